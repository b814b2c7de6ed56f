from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Standard error response model"""
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")
    status: int = Field(description="HTTP status code")
    error: str = Field(description="Error type")
    message: str = Field(description="Detailed error message")
    path: str = Field(description="Request path")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "timestamp": "2024-01-01T12:00:00",
                "status": 404,
                "error": "Airport Not Found",
                "message": "Airport with ICAO code 'ZZZZ' not found",
                "path": "/api/v1/airports/ZZZZ",
            }
        }
    )


class CircuitBreakerStatus(BaseModel):
    state: str = Field(description="CLOSED, OPEN or HALF_OPEN")
    buffered_calls: int = Field(description="Outcomes in the sliding window")
    failure_rate: float = Field(description="Failure rate over the window, in percent")
    slow_call_rate: float = Field(description="Slow-call rate over the window, in percent")


class CacheStatus(BaseModel):
    size: int
    maxsize: int
    hits: int
    misses: int
    evictions: int


class HealthResponse(BaseModel):
    """Health check response model"""
    status: str = Field(description="Service status")
    version: str = Field(description="API version")
    timestamp: datetime = Field(default_factory=datetime.now, description="Health check timestamp")
    circuit_breaker: Optional[CircuitBreakerStatus] = Field(None, description="Upstream circuit breaker")
    caches: Dict[str, CacheStatus] = Field(default_factory=dict, description="Cache statistics")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "timestamp": "2024-01-01T12:00:00",
                "circuit_breaker": {
                    "state": "CLOSED",
                    "buffered_calls": 4,
                    "failure_rate": 0.0,
                    "slow_call_rate": 0.0,
                },
                "caches": {
                    "airports": {"size": 12, "maxsize": 1000, "hits": 40, "misses": 12, "evictions": 0}
                },
            }
        }
    )
