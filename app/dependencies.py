from __future__ import annotations

from fastapi import Depends, Request

from datastore.readings import ReadingStore
from services.ingestion import IngestionService


def get_store(request: Request) -> ReadingStore:
    return request.app.state.store


def get_ingestion_service(store: ReadingStore = Depends(get_store)) -> IngestionService:
    return IngestionService(store)
