"""
Serverless entry point for the Helpdesk Intelligence API
"""
import os

# Serverless: in-memory storage and no background scheduler
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("AI_SETTINGS_PATH", "/tmp/ai_settings.yaml")
os.environ.setdefault("LEARNING_SCHEDULER_ENABLED", "false")

from mangum import Mangum
from helpdesk_intel.main import app

# Lambda handler for the ASGI app; lifespan wires the services on cold start
handler = Mangum(app, lifespan="auto")
