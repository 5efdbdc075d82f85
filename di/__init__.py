"""
GATHERLY - Dependency Injection

All wiring of subsystem handles happens here at process startup.

Usage:
    from di import build_registry

    registry = build_registry(config, gateway)
    outcome = await sequencer.run(registry.handles)
"""
from di.container import SubsystemRegistry, build_registry

__all__ = [
    "SubsystemRegistry",
    "build_registry",
]
