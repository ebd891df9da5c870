"""검색 인덱스 동기화 핸들러

upsert / delete 모두 문서 id 기준이라 재실행해도 결과가 같습니다.
"""

from typing import Any

from pydantic import BaseModel

from ledger.model.job import QueueName, SearchIndexJob
from worker.base import BaseHandler, handler
from worker.job.model.search_index import JobPosting, JobPostingRef, to_search_document
from worker.model.handler import HandlerResult, JobContext


@handler(
    QueueName.SEARCH_INDEX,
    SearchIndexJob.INDEX_JOB,
    SearchIndexJob.UPDATE_JOB_INDEX,
    SearchIndexJob.DELETE_JOB_INDEX,
)
class SearchIndexHandler(BaseHandler):

    def get_payload_model(self, job_name: str) -> type[BaseModel]:
        if job_name == SearchIndexJob.DELETE_JOB_INDEX:
            return JobPostingRef
        return JobPosting

    async def execute(self, payload: Any, context: JobContext) -> HandlerResult:
        document_id = str(payload.id)

        if context.job_name == SearchIndexJob.DELETE_JOB_INDEX:
            removed = await self.services.search.delete(document_id)
            context.logger.info(f"Search document deleted: id={document_id}, existed={removed}")
            return HandlerResult(action="delete", document_id=document_id, existed=removed)

        document = to_search_document(payload)
        await self.services.search.upsert(document)
        context.logger.info(f"Search document upserted: id={document_id}, company={document['company']}")
        return HandlerResult(action="upsert", document_id=document_id)
