"""
Pytest bootstrap.
Settings are read at import time, so the testing environment must be set
before any application module is imported.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ["USE_CELERY"] = "False"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["PAYMENT_GATEWAY_SECRET"] = "test-gateway-secret"
os.environ["PAYMENT_GATEWAY_KEY_ID"] = "rzp_test_key"
