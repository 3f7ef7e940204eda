from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Owner(BaseModel):
    login: str


class Repository(BaseModel):
    name: str
    full_name: str
    clone_url: str
    owner: Owner


class Installation(BaseModel):
    id: int


class HeadCommit(BaseModel):
    id: str = Field(pattern=r"^[0-9a-fA-F]{4,64}$")


class PushPayload(BaseModel):
    ref: str
    repository: Repository
    installation: Installation
    head_commit: HeadCommit


class PushEvent(BaseModel):
    """Flattened view of a push payload that parameterizes one run."""

    model_config = ConfigDict(frozen=True)

    ref: str
    repository_full_name: str
    clone_url: str
    owner_login: str
    repo_name: str
    commit_id: str
    installation_id: int

    @classmethod
    def from_payload(cls, payload: PushPayload) -> "PushEvent":
        return cls(
            ref=payload.ref,
            repository_full_name=payload.repository.full_name,
            clone_url=payload.repository.clone_url,
            owner_login=payload.repository.owner.login,
            repo_name=payload.repository.name,
            commit_id=payload.head_commit.id,
            installation_id=payload.installation.id,
        )


class StatusState(StrEnum):
    pending = "pending"
    success = "success"
    failure = "failure"


class StatusUpdate(BaseModel):
    commit_sha: str
    state: StatusState
    context: str
    description: str
    target_url: str

    def to_api(self) -> dict[str, str]:
        return {
            "state": self.state.value,
            "context": self.context,
            "description": self.description,
            "target_url": self.target_url,
        }
