"""
Health Models — probe responses.
"""

from typing import Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float
    environment: str


class RealtimeCheck(BaseModel):
    status: str
    connections: int
    tracked_vehicles: int


class HealthChecks(BaseModel):
    database: str
    realtime: RealtimeCheck


class DetailedHealthResponse(HealthResponse):
    version: str
    checks: HealthChecks


class ProbeResponse(BaseModel):
    status: str
    detail: Optional[str] = None
