"""
FastAPI application entry point.

    uvicorn rcm.main:app

- `rcm/core/setup.py`: early initialization (env, Sentry, logging, settings)
- `rcm/core/application.py`: application factory
- `rcm/api/routes/`: route handlers by domain
"""
from rcm.core.setup import setup_application
from rcm.core.application import create_application

# Must run before the app instance is created
setup_application()

app = create_application()
