# Scheduling API - FastAPI routes, schemas and dependencies
