from budgetkeep.utils.rate_limit import Debounced, Throttled, debounce, throttle

__all__ = ["Debounced", "Throttled", "debounce", "throttle"]
