"""Domain services: session lifecycle, progress, achievements, analytics and rankings"""
from progress_engine.services.container import ServiceContainer, create_store

__all__ = ["ServiceContainer", "create_store"]
