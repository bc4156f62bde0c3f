"""Release decision engine with a deferred (pending) release queue.

Evaluates release candidates against per-movie profiles (restrictions, delays,
quality upgrade rules, free space, custom-format scoring) and holds releases that
are good but not yet eligible until they can be grabbed.
"""

__version__ = "0.1.0"
