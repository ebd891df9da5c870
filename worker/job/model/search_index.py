"""
검색 인덱스 잡 payload 모델

payload 예시 (indexJob, updateJobIndex):
{
    "id": 42,
    "title": "Backend Engineer",
    "description": "...",
    "employer": {"name": "Acme"},
    "city": "Seoul",
    "isRemote": false,
    "skills": ["python", {"name": "sql"}],
    "createdAt": "2025-01-01T00:00:00Z"
}

payload 예시 (deleteJobIndex):
{"id": 42}
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Employer(BaseModel):
    model_config = ConfigDict(extra='allow')

    name: str


class JobPosting(BaseModel):
    """채용 공고 레코드"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='allow')

    id: int | str
    title: str
    description: str = ""
    employer: Employer
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zipcode: int | str | None = None
    is_remote: bool = False
    is_active: bool = True
    experience: str | None = None
    job_type: str | None = None
    skills: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_validator('skills', mode='before')
    @classmethod
    def _skill_names(cls, value: Any) -> Any:
        # {"name": "..."} 형태의 스킬 레코드도 허용
        if isinstance(value, list):
            return [item.get('name') if isinstance(item, dict) else item for item in value]
        return value


class JobPostingRef(BaseModel):
    """삭제용 (id만 필요)"""
    model_config = ConfigDict(extra='allow')

    id: int | str


def to_search_document(posting: JobPosting) -> dict[str, Any]:
    """검색 엔진 문서 형식으로 변환"""
    created_at = int(posting.created_at.timestamp() * 1000) if posting.created_at else 0
    return {
        "id": str(posting.id),
        "title": posting.title,
        "company": posting.employer.name,
        "description": posting.description,
        "city": posting.city,
        "state": posting.state,
        "country": posting.country,
        "zipcode": str(posting.zipcode) if posting.zipcode else "",
        "isRemote": posting.is_remote,
        "isActive": posting.is_active,
        "experience": posting.experience,
        "jobType": posting.job_type,
        "skills": posting.skills,
        "createdAt": created_at,
    }
