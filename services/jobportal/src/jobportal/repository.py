from __future__ import annotations

import logging
import threading
from typing import Any

from bson import ObjectId
from pymongo import MongoClient, ReturnDocument
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

JOBS_COLLECTION = "jobs"
APPLICATIONS_COLLECTION = "job_applications"

# Job fields copied onto an application when listing an applicant's applications.
ENRICHMENT_FIELDS = (
    "title",
    "location",
    "jobType",
    "salaryRange",
    "applicationDeadline",
    "company",
    "company_logo",
)

LOGGER = logging.getLogger("jobportal.repository")

Document = dict[str, Any]


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document: Document | None) -> Document | None:
    if document is None:
        return None
    return serialize_value(document)


def enrich_application(application: Document, job: Document | None) -> Document:
    """Copy the listing fields of ``job`` onto ``application``.

    A missing job leaves the application as it is. Fields absent from the job
    are not added.
    """
    if job is None:
        return application
    enriched = dict(application)
    for field in ENRICHMENT_FIELDS:
        if field in job:
            enriched[field] = job[field]
    return enriched


def parse_object_id(value: str) -> ObjectId:
    # Raises bson.errors.InvalidId for malformed ids.
    return ObjectId(value)


def try_parse_object_id(value: Any) -> ObjectId | None:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class JobPortalRepository:
    def __init__(
        self,
        mongo_uri: str,
        db_name: str,
        *,
        timeout_seconds: float,
        client: Any | None = None,
    ) -> None:
        self.mongo_uri = mongo_uri
        self.db_name = db_name
        self.timeout_ms = int(timeout_seconds * 1000)
        self._client = client
        self._owns_client = client is None
        self._database: Any | None = None
        self._lock = threading.RLock()

    @property
    def database(self) -> Any:
        if self._database is None:
            raise RuntimeError("Database connection is not initialized")
        return self._database

    @property
    def jobs(self) -> Any:
        return self.database[JOBS_COLLECTION]

    @property
    def applications(self) -> Any:
        return self.database[APPLICATIONS_COLLECTION]

    def connect(self) -> None:
        with self._lock:
            if self._client is None:
                self._client = MongoClient(
                    self.mongo_uri,
                    serverSelectionTimeoutMS=self.timeout_ms,
                    socketTimeoutMS=self.timeout_ms,
                    connectTimeoutMS=self.timeout_ms,
                )
            self._database = self._client[self.db_name]
            self.ping()
            LOGGER.info("Connected to document store database=%s", self.db_name)

    def ping(self) -> bool:
        self._client.admin.command("ping")
        return True

    def close(self) -> None:
        with self._lock:
            if self._client is None:
                return
            if self._owns_client:
                self._client.close()
                self._client = None
            self._database = None

    def list_jobs(self, hr_email: str | None = None) -> list[Document]:
        query: Document = {}
        if hr_email:
            query = {"hr_email": hr_email}
        return [serialize_document(job) for job in self.jobs.find(query)]

    def get_job(self, job_id: str) -> Document | None:
        job = self.jobs.find_one({"_id": parse_object_id(job_id)})
        return serialize_document(job)

    def create_job(self, job: Document) -> InsertOneResult:
        return self.jobs.insert_one(dict(job))

    def list_applications_for_applicant(self, applicant_email: str) -> list[Document]:
        applications = list(self.applications.find({"applicant_email": applicant_email}))
        enriched: list[Document] = []
        for application in applications:
            job: Document | None = None
            job_object_id = try_parse_object_id(application.get("job_id"))
            if job_object_id is not None:
                job = self.jobs.find_one({"_id": job_object_id})
            enriched.append(serialize_document(enrich_application(application, job)))
        return enriched

    def get_application(self, application_id: str) -> Document | None:
        application = self.applications.find_one({"_id": parse_object_id(application_id)})
        return serialize_document(application)

    def list_applications_for_job(self, job_id: str) -> list[Document]:
        return [
            serialize_document(application)
            for application in self.applications.find({"job_id": job_id})
        ]

    def create_application(self, application: Document) -> InsertOneResult:
        return self.applications.insert_one(dict(application))

    def increment_application_count(self, job_id: str) -> int | None:
        """Atomically add one to the job's ``applicationCount``.

        Returns the new count, or ``None`` when no job has that id.
        """
        job = self.jobs.find_one_and_update(
            {"_id": parse_object_id(job_id)},
            {"$inc": {"applicationCount": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if job is None:
            return None
        return int(job["applicationCount"])

    def update_application_status(self, application_id: str, status: str) -> UpdateResult:
        return self.applications.update_one(
            {"_id": parse_object_id(application_id)},
            {"$set": {"status": status}},
        )

    def delete_application(self, application_id: str) -> DeleteResult:
        return self.applications.delete_one({"_id": parse_object_id(application_id)})
