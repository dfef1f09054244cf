"""Pydantic schemas for domain management"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class CreateDomainRequest(BaseModel):
    domain: str = Field(min_length=1, max_length=253)


class DNSRecord(BaseModel):
    type: str
    name: str
    value: str
    ttl: int
    description: Optional[str] = None


class DomainResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    domain: str
    status: str
    ses_identity_arn: Optional[str] = None
    ses_configuration_set: Optional[str] = None
    do_domain_id: Optional[str] = None
    dns_records: List[DNSRecord] = []
    verification_token: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DomainSetupResponse(BaseModel):
    domain: DomainResponse
    dnsRecords: List[DNSRecord]
    sesConfigurationSet: Optional[str] = None
    digitalOceanRecords: List[dict] = []
    dnsConflicts: List[DNSRecord] = []
    automated: bool = False
    setupInstructions: str
    message: str = "Domain added successfully. Please verify DNS records."


class DomainListResponse(BaseModel):
    domains: List[DomainResponse]


class DomainDetailResponse(BaseModel):
    domain: DomainResponse


class DomainVerifyResponse(BaseModel):
    status: str
    verified: bool
    message: str
