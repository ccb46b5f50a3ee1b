from .app import create_app, run_server
from .services import AddonServices, build_services

__all__ = ["AddonServices", "build_services", "create_app", "run_server"]
