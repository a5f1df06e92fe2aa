# appointment_service/blueprints/appointments/__init__.py
"""
Appointments REST API (v1)
"""
from flask import Blueprint

bp = Blueprint('appointments', __name__, url_prefix='/v1/appointments')

# Routes are imported after the blueprint exists
from appointment_service.blueprints.appointments import routes  # noqa: E402,F401
