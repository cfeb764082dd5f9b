"""Base Celery task with a lazily opened MongoDB handle."""

import logging

from celery import Task
from pymongo.database import Database

from repo_insight.database.mongo import get_database

logger = logging.getLogger(__name__)


class PipelineTask(Task):
    abstract = True
    _db: Database | None = None

    @property
    def db(self) -> Database:
        if self._db is None:
            self._db = get_database()
        return self._db

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name}[{task_id}] failed: {exc}")
        super().on_failure(exc, task_id, args, kwargs, einfo)
