__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy re-exports of the pipeline building blocks."""
    _lazy = {
        "PipelineCoordinator": "hark.coordinator",
        "IntentResolver": "hark.resolver",
        "UtteranceSegmenter": "hark.segmenter",
        "ActionDispatcher": "hark.actions",
        "ActionRegistry": "hark.actions",
        "load_catalog": "hark.catalog",
        "load_config": "hark.config",
    }
    if name in _lazy:
        import importlib

        return getattr(importlib.import_module(_lazy[name]), name)
    raise AttributeError(f"module 'hark' has no attribute {name!r}")
