from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SpaceCreate(BaseModel):
    name: str = Field(min_length=1)


class SpaceUpdate(BaseModel):
    name: str = Field(min_length=1)


class VaultCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    space_id: Optional[str] = Field(default=None, alias="spaceId")
    name: str = Field(min_length=1)
    parent_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("parentId", "parentVaultId")
    )


class VaultUpdate(BaseModel):
    name: str = Field(min_length=1)


class LogCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    space_id: Optional[str] = Field(default=None, alias="spaceId")
    vault_id: Optional[str] = Field(default=None, alias="vaultId")
    name: str = Field(min_length=1)
    code: str = ""
    language: Optional[str] = None


class LogUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    code: Optional[str] = None
    language: Optional[str] = None


class RunRequest(BaseModel):
    language: str = Field(min_length=1)
    code: str = Field(min_length=1)


class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1)
    language: Optional[str] = None
    filename: Optional[str] = None
