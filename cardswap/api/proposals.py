"""
Trade proposal API endpoints.

Each proposal is returned as the viewer sees it: effective status, current
step and available actions. Mutations are sent one intent at a time and
answered with the refreshed view.
"""

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.database import get_session
from cardswap.gateway.client import ShippingGateway, get_shipping_gateway
from cardswap.models.proposal import Party
from cardswap.services.presentation import Intent, ProposalView, TradePresenter

router = APIRouter(prefix="/proposals", tags=["proposals"])


class ProposeRequest(BaseModel):
    """Request model for proposing a trade."""

    match_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1, description="The proposing party")


class IntentRequest(BaseModel):
    """Request model for one intent on a proposal."""

    user_id: str = Field(..., min_length=1, description="The acting party")
    intent: Intent
    shipping_method: str | None = Field(
        default=None, description="For select_shipping_method: mail or local_meetup"
    )
    address_id: str | None = Field(default=None, description="For select_address")
    quote_id: str | None = Field(default=None, description="For select_rate")

    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"user_id", "intent"}, exclude_none=True)


class RateQuoteResponse(BaseModel):
    """A shipping option offered to the viewer."""

    id: str
    amount: str
    currency: str
    provider: str
    service_token: str
    service_name: str
    tier: str | None = None
    estimated_days: int | None = None


class ProposalViewResponse(BaseModel):
    """A proposal as seen by one party."""

    id: str
    match_id: str
    proposer_id: str
    recipient_id: str
    role: Literal["proposer", "recipient"]
    status: str
    effective_status: str
    current_step: str
    available_actions: list[str] = Field(default_factory=list)
    shipping_method: str | None = None
    my_confirmed: bool = False
    their_confirmed: bool = False
    my_shipping_confirmed: bool = False
    their_shipping_confirmed: bool = False
    my_tracking_number: str | None = None
    my_carrier: str | None = None
    my_label_url: str | None = None
    their_tracking_number: str | None = None
    their_carrier: str | None = None
    quotes: list[RateQuoteResponse] = Field(default_factory=list)
    selected_quote_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None


class ProposalListResponse(BaseModel):
    """Response model for a party's proposals."""

    user_id: str
    proposals: list[ProposalViewResponse] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    """Response model for delete operations."""

    proposal_id: str
    deleted: bool


class TrackingResponse(BaseModel):
    """Carrier tracking for one party's parcel."""

    proposal_id: str
    party: Party
    status: str
    details: str
    last_update: str | None = None
    eta: str | None = None


def _to_response(view: ProposalView) -> ProposalViewResponse:
    return ProposalViewResponse.model_validate(view.to_dict())


def _presenter(session: AsyncSession, gateway: ShippingGateway) -> TradePresenter:
    return TradePresenter(session, gateway)


@router.post("", response_model=ProposalViewResponse, status_code=status.HTTP_201_CREATED)
async def propose_trade(
    request: ProposeRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    gateway: Annotated[ShippingGateway, Depends(get_shipping_gateway)],
) -> ProposalViewResponse:
    """
    Propose a trade for a match.

    Fails with 409 if the match already has an active proposal, and with
    422 if the match's cards no longer exist.
    """
    view = await _presenter(session, gateway).propose(request.match_id, request.user_id)
    return _to_response(view)


@router.get("", response_model=ProposalListResponse)
async def list_proposals(
    user_id: Annotated[str, Query(min_length=1)],
    session: Annotated[AsyncSession, Depends(get_session)],
    gateway: Annotated[ShippingGateway, Depends(get_shipping_gateway)],
) -> ProposalListResponse:
    """
    List the user's proposals, newest first.

    Proposals whose cards no longer exist are left out.
    """
    views = await _presenter(session, gateway).list_views(user_id)
    return ProposalListResponse(user_id=user_id, proposals=[_to_response(v) for v in views])


@router.get("/{proposal_id}", response_model=ProposalViewResponse)
async def get_proposal_view(
    proposal_id: str,
    user_id: Annotated[str, Query(min_length=1)],
    session: Annotated[AsyncSession, Depends(get_session)],
    gateway: Annotated[ShippingGateway, Depends(get_shipping_gateway)],
) -> ProposalViewResponse:
    """Get one proposal as `user_id` sees it."""
    view = await _presenter(session, gateway).view(proposal_id, user_id)
    return _to_response(view)


@router.post("/{proposal_id}/intents", response_model=ProposalViewResponse)
async def send_intent(
    proposal_id: str,
    request: IntentRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    gateway: Annotated[ShippingGateway, Depends(get_shipping_gateway)],
) -> ProposalViewResponse:
    """
    Apply one intent to a proposal.

    Use DELETE /proposals/{id} to delete; the delete intent is not
    accepted here because there is no view to return afterwards.
    """
    view = await _presenter(session, gateway).handle(
        proposal_id, request.user_id, request.intent, request.payload()
    )
    return _to_response(view)


@router.delete("/{proposal_id}", response_model=DeleteResponse)
async def delete_trade_proposal(
    proposal_id: str,
    user_id: Annotated[str, Query(min_length=1)],
    session: Annotated[AsyncSession, Depends(get_session)],
    gateway: Annotated[ShippingGateway, Depends(get_shipping_gateway)],
) -> DeleteResponse:
    """Delete a proposal that neither party has fully confirmed."""
    await _presenter(session, gateway).delete(proposal_id, user_id)
    return DeleteResponse(proposal_id=proposal_id, deleted=True)


@router.get("/{proposal_id}/tracking", response_model=TrackingResponse)
async def get_tracking(
    proposal_id: str,
    user_id: Annotated[str, Query(min_length=1)],
    party: Party,
    session: Annotated[AsyncSession, Depends(get_session)],
    gateway: Annotated[ShippingGateway, Depends(get_shipping_gateway)],
) -> TrackingResponse:
    """Carrier tracking for the parcel sent by `party`."""
    tracking = await _presenter(session, gateway).shipping.tracking(proposal_id, user_id, party)
    return TrackingResponse(
        proposal_id=proposal_id,
        party=party,
        status=tracking.status,
        details=tracking.details,
        last_update=tracking.last_update,
        eta=tracking.eta,
    )
