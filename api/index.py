"""
Serverless entry point for the ISP Ticket Service API
"""
import sys
import os

# Make the application packages under src/ importable
src_dir = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src")
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("SLA_CONFIG_PATH", "/tmp/sla_config.yaml")
os.environ.setdefault("METRICS_PUSH_INTERVAL", "0")  # No background push in serverless

from mangum import Mangum
from main import app

# Lambda handler for ASGI app (disable lifespan for serverless)
handler = Mangum(app, lifespan="off")
