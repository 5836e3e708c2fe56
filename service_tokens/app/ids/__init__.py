"""
Token identifier generation.
"""

from .snowflake import SnowflakeGenerator, SnowflakeInfo

__all__ = ["SnowflakeGenerator", "SnowflakeInfo"]
