# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings, root URLconf and the ASGI/WSGI entry points.
# =============================================================================
