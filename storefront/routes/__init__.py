"""
API routers. Each module exposes a `router` mounted by the application factory.
"""
