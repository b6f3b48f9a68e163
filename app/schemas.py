# -*- coding: utf-8 -*-
"""
Pydantic request bodies for every endpoint.

Responses are plain dicts built from ORM rows (see app.db.models.row_to_dict):
product fields are schema-on-read, so they are not re-validated on the way out.
"""
from __future__ import annotations
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ═══════════════════════════════════════════════════════════════════════════════
# USERS
# ═══════════════════════════════════════════════════════════════════════════════


class SignupUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email:     EmailStr
    name:      str           = Field(..., min_length=1, max_length=255)
    password:  Optional[str] = Field(None, max_length=72)
    image_url: Optional[str] = Field(None, alias="imageUrl", max_length=255)


class LoginUser(BaseModel):
    email:    EmailStr
    password: Optional[str] = Field(None, max_length=72)


class CreateUserRequest(BaseModel):
    type: Optional[str] = None     # "google" | "credentials"
    user: SignupUser

    @property
    def is_google(self) -> bool:
        return (self.type or "").lower() == "google"


class LoginRequest(BaseModel):
    type: Optional[str] = None
    user: LoginUser

    @property
    def is_google(self) -> bool:
        return (self.type or "").lower() == "google"


# ═══════════════════════════════════════════════════════════════════════════════
# SEARCH
# ═══════════════════════════════════════════════════════════════════════════════


class Budget(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class SearchFilters(BaseModel):
    model_config = ConfigDict(extra="allow")

    category: Optional[str]    = None
    budget:   Optional[Budget] = None


class SearchRequest(BaseModel):
    query:   str                     = Field(..., min_length=1, max_length=500)
    filters: Optional[SearchFilters] = None


class FormRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)


# ═══════════════════════════════════════════════════════════════════════════════
# COMPARE
# ═══════════════════════════════════════════════════════════════════════════════


class CompareRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    queries: Union[List[str], str]
    user_id: str = Field(..., alias="userId", min_length=1)

    def query_list(self) -> List[str]:
        raw = [self.queries] if isinstance(self.queries, str) else self.queries
        return [q.strip() for q in raw if q and q.strip()]
