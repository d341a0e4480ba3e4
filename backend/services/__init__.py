"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - ride_management: Ride lifecycle, chat and read queries
    - matching: Finding compatible rides for a request
    - expiration: Retiring rides whose time window has passed
"""
