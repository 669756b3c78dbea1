"""
Configuration subsystem for the Leaderboard service.

Static configuration is loaded from environment variables (with .env
support) and validated on application start. Changes require a restart,
except for the values covered by ``Config.reload_safe_configs()``.

Usage
-----
```python
from leaderboard.core.config import Config

if Config.redis_enabled():
    ...
```
"""

from leaderboard.core.config.config import Config, Environment

__all__ = ["Config", "Environment"]
