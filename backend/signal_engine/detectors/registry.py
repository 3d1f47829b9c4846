"""Name -> class table for the detection models.

Each model module decorates its class with ``@register_detector(name)``;
the name is also the key used for fusion priors and regime factors.
"""

import logging

logger = logging.getLogger(__name__)

DETECTORS: dict[str, type] = {}


def register_detector(name: str):
    def decorator(cls):
        if name in DETECTORS:
            raise ValueError(f"Detector name '{name}' already taken by {DETECTORS[name].__name__}")
        DETECTORS[name] = cls
        logger.debug(f"Detector {name}: {cls.__name__}")
        return cls

    return decorator


def list_detectors() -> list[str]:
    return sorted(DETECTORS)


def create_detector(name: str, **params):
    try:
        cls = DETECTORS[name]
    except KeyError:
        raise KeyError(f"No detector named '{name}' (known: {', '.join(list_detectors())})") from None
    return cls(**params)


def create_all_detectors(names: list[str] | None = None) -> list:
    """One instance per named model, every registered model when ``names`` is empty."""
    return [create_detector(name) for name in sorted(names or DETECTORS)]
