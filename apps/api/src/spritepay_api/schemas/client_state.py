"""Client-held durable state exchanged with the eligibility and referral endpoints."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from spritepay_api.services.security.claim_tracker import InMemoryKeyValueStore, SecurityKeys

# meta: schema: client-local-state


class ClientLocalState(BaseModel):
    """Values the browser keeps in local storage between visits.

    The server never stores these; the client submits them with each request
    and persists whatever comes back.
    """

    model_config = ConfigDict(populate_by_name=True)

    device_id: Optional[str] = Field(None, alias="deviceId")
    first_visit: Optional[int | str] = Field(None, alias="firstVisit")
    browser_hash: Optional[str] = Field(None, alias="browserHash")
    security_hash: Optional[str] = Field(None, alias="securityHash")
    credits_claimed: bool = Field(False, alias="creditsClaimed")
    pending_referral_code: Optional[str] = Field(None, alias="pendingReferralCode")

    def to_store(self) -> InMemoryKeyValueStore:
        return InMemoryKeyValueStore(
            {
                SecurityKeys.DEVICE_ID: self.device_id,
                SecurityKeys.FIRST_VISIT: None if self.first_visit is None else str(self.first_visit),
                SecurityKeys.BROWSER_HASH: self.browser_hash,
                SecurityKeys.SECURITY_HASH: self.security_hash,
                SecurityKeys.CREDITS_CLAIMED: "true" if self.credits_claimed else None,
                SecurityKeys.PENDING_REFERRAL_CODE: self.pending_referral_code,
            }
        )

    @classmethod
    def from_store(cls, store: InMemoryKeyValueStore) -> "ClientLocalState":
        data = store.snapshot()
        return cls(
            device_id=data.get(SecurityKeys.DEVICE_ID),
            first_visit=data.get(SecurityKeys.FIRST_VISIT),
            browser_hash=data.get(SecurityKeys.BROWSER_HASH),
            security_hash=data.get(SecurityKeys.SECURITY_HASH),
            credits_claimed=data.get(SecurityKeys.CREDITS_CLAIMED) == "true",
            pending_referral_code=data.get(SecurityKeys.PENDING_REFERRAL_CODE),
        )
