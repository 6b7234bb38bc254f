"""
app/services package marker.

Service modules are imported directly (``from app.services.x import ...``);
the ingestion service pulls in repositories lazily and is not re-exported here.
"""
