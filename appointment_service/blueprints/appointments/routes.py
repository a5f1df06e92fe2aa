# appointment_service/blueprints/appointments/routes.py
from flask import request, jsonify, current_app, Response

from appointment_service.blueprints.appointments import bp
from appointment_service.core.ical import ICalParseError
from appointment_service.services import appointment_service as service
from appointment_service.services.appointment_service import AppointmentNotFound, ConflictError
from appointment_service.utils.payloads import PayloadError, parse_appointment_payload, parse_search_args


# --- ERROR MAPPING ---

@bp.errorhandler(PayloadError)
def handle_payload_error(e):
    current_app.logger.info(f"Invalid request on {request.path}: {e}")
    return jsonify({"error": str(e)}), 400


@bp.errorhandler(AppointmentNotFound)
def handle_not_found(e):
    return jsonify({"error": str(e)}), 404


@bp.errorhandler(ConflictError)
def handle_conflict(e):
    # The body is the list of appointments that block this one
    return jsonify([appointment.to_dict() for appointment in e.conflicts]), 409


@bp.errorhandler(ICalParseError)
def handle_ical_error(e):
    current_app.logger.error(f"Stored calendar document unusable on {request.path}: {e}")
    return jsonify({"error": str(e)}), 422


def _json_body():
    payload = request.get_json(silent=True)
    if payload is None:
        raise PayloadError("Request body must be JSON")
    return payload


# --- ROUTES ---

@bp.get('')
def search():
    """Searches appointments; every query parameter is an optional filter."""
    filters = parse_search_args(request.args)
    appointments = service.search_appointments(**filters)
    return jsonify([a.to_dict() for a in appointments]), 200


@bp.post('')
def create():
    """
    Creates an appointment. id, num_participants and ical_data are computed here.
    201 with the appointment, or 409 with the list of conflicting appointments.
    """
    data = parse_appointment_payload(_json_body())
    appointment = service.create_appointment(data)
    response = jsonify(appointment.to_dict())
    response.status_code = 201
    response.headers['Location'] = f"/v1/appointments/{appointment.id}"
    return response


@bp.get('/<appointment_id>')
def get_one(appointment_id):
    return jsonify(service.get_appointment(appointment_id).to_dict()), 200


@bp.get('/<appointment_id>/ical')
def get_ical(appointment_id):
    appointment = service.get_appointment(appointment_id)
    return Response(appointment.ical_data or "", mimetype='text/calendar')


@bp.put('/<appointment_id>')
def update(appointment_id):
    data = parse_appointment_payload(_json_body())
    appointment = service.update_appointment(appointment_id, data)
    return jsonify(appointment.to_dict()), 200


@bp.delete('/<appointment_id>')
def delete(appointment_id):
    return jsonify(service.delete_appointment(appointment_id)), 200
