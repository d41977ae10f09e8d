"""HTTP gateway: FastAPI app, routers and request dependencies."""
