"""SQLModel table backing the cross-process sync lease."""

from __future__ import annotations

from sqlmodel import Field, SQLModel


class SyncLease(SQLModel, table=True):
    name: str = Field(primary_key=True)
    owner: str
    expires_at: int = Field(default=0)


__all__ = ["SyncLease"]
