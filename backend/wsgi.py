# backend/wsgi.py
from stockapp import create_app
from stockapp.services.maintenance_service import MaintenanceScheduler

app = create_app()

if app.config.get("MAINTENANCE_ENABLED"):
    scheduler = MaintenanceScheduler(app)
    scheduler.start()
    app.extensions["maintenance_scheduler"] = scheduler


if __name__ == "__main__":
    app.run()
