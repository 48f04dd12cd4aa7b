from typing import Callable, Dict, List, Optional


class ActivityRegistry:
    """Central registry for all activities."""

    _activities: Dict[str, Callable] = {}

    @classmethod
    def register(cls, category: str, name: Optional[str] = None):
        """Decorator to register an activity under ``category:name``."""
        def decorator(activity_func):
            activity_name = name or activity_func.__name__
            cls._activities[f"{category}:{activity_name}"] = activity_func
            return activity_func
        return decorator

    @classmethod
    def get_all_activities(cls) -> Dict[str, Callable]:
        """Get all registered activities."""
        return cls._activities

    @classmethod
    def get_by_category(cls, category: str) -> List[Callable]:
        prefix = f"{category}:"
        return [func for key, func in cls._activities.items() if key.startswith(prefix)]
