from cardswap.db.database import get_session, init_db
from cardswap.db.operations import (
    address_to_model,
    clear_default_address,
    create_address,
    create_card,
    create_match,
    create_notification,
    create_proposal,
    delete_address,
    delete_card,
    delete_proposal,
    delete_proposals,
    existing_card_ids,
    get_active_proposal_for_match,
    get_address,
    get_match,
    get_matches,
    get_proposal,
    list_addresses,
    list_all_proposals,
    list_notifications,
    list_proposals_for_user,
    mark_notification_read,
    match_to_model,
    notification_to_model,
    proposal_to_model,
    update_address_fields,
    update_proposal_fields,
)

__all__ = [
    "address_to_model",
    "clear_default_address",
    "create_address",
    "create_card",
    "create_match",
    "create_notification",
    "create_proposal",
    "delete_address",
    "delete_card",
    "delete_proposal",
    "delete_proposals",
    "existing_card_ids",
    "get_active_proposal_for_match",
    "get_address",
    "get_match",
    "get_matches",
    "get_proposal",
    "get_session",
    "init_db",
    "list_addresses",
    "list_all_proposals",
    "list_notifications",
    "list_proposals_for_user",
    "mark_notification_read",
    "match_to_model",
    "notification_to_model",
    "proposal_to_model",
    "update_address_fields",
    "update_proposal_fields",
]
