"""
OneSheetRepository - Supabase access for OneSheet records.

Covers the reads and partial writes the pipeline needs:
- onesheet rows (with owner / accepted brand-share access check)
- onesheet_ai_instructions rows (prompt configuration)
- active context_data rows (context hub documents)

Writes touch only the columns passed in, and can be made conditional on
the updated_at value read earlier (optimistic concurrency).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from ..core.config import Config
from ..core.database import get_supabase_client
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError
from .models import PromptConfiguration

logger = logging.getLogger(__name__)


ONESHEET_TABLE = "onesheet"
AI_INSTRUCTIONS_TABLE = "onesheet_ai_instructions"
CONTEXT_DATA_TABLE = "context_data"
BRAND_SHARES_TABLE = "brand_shares"


class OneSheetRepository:
    """Persistence collaborator for the OneSheet pipeline."""

    def __init__(self, supabase: Optional[Client] = None, optimistic_locking: Optional[bool] = None):
        self.supabase = supabase or get_supabase_client()
        self.optimistic_locking = (
            Config.ONESHEET_OPTIMISTIC_LOCKING if optimistic_locking is None else optimistic_locking
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_onesheet(self, onesheet_id: str, user_id: str) -> Dict[str, Any]:
        """
        Fetch a OneSheet the caller may read.

        Raises:
            NotFoundError: no OneSheet with this id
            AuthorizationError: caller is neither owner nor accepted brand share
        """
        result = self.supabase.table(ONESHEET_TABLE).select("*").eq(
            "id", onesheet_id
        ).limit(1).execute()

        if not result.data:
            raise NotFoundError("OneSheet not found")

        onesheet = result.data[0]
        if not self._can_access(onesheet, user_id):
            logger.warning(f"User {user_id} denied access to OneSheet {onesheet_id}")
            raise AuthorizationError("You do not have access to this OneSheet")

        return onesheet

    def _can_access(self, onesheet: Dict[str, Any], user_id: str) -> bool:
        if onesheet.get("user_id") == user_id:
            return True

        brand_id = onesheet.get("brand_id")
        if not brand_id:
            return False

        shares = self.supabase.table(BRAND_SHARES_TABLE).select("id").eq(
            "brand_id", brand_id
        ).eq("shared_with_user_id", user_id).eq("status", "accepted").limit(1).execute()

        return bool(shares.data)

    def get_prompt_configuration(self, onesheet_id: str) -> Optional[PromptConfiguration]:
        """Fetch the AI settings row for a OneSheet, or None if never configured."""
        result = self.supabase.table(AI_INSTRUCTIONS_TABLE).select("*").eq(
            "onesheet_id", onesheet_id
        ).limit(1).execute()

        if not result.data:
            return None
        return PromptConfiguration.model_validate(result.data[0])

    def get_active_context_records(self, onesheet_id: str) -> List[Dict[str, Any]]:
        """Context hub documents that have not been soft-deleted."""
        result = self.supabase.table(CONTEXT_DATA_TABLE).select("*").eq(
            "onesheet_id", onesheet_id
        ).eq("is_active", True).execute()

        return result.data or []

    # =========================================================================
    # Writes
    # =========================================================================

    def update_onesheet(
        self,
        onesheet_id: str,
        updates: Dict[str, Any],
        expected_updated_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Partially update a OneSheet and return the updated row.

        Only the keys in `updates` are written (plus updated_at). When
        optimistic locking is on and `expected_updated_at` is given, the
        write only applies if the row still carries that updated_at.

        Raises:
            ConflictError: the row changed since it was read
            NotFoundError: the row no longer exists
        """
        data = dict(updates)
        data["updated_at"] = datetime.now(timezone.utc).isoformat()

        query = self.supabase.table(ONESHEET_TABLE).update(data).eq("id", onesheet_id)

        conditional = self.optimistic_locking and expected_updated_at is not None
        if conditional:
            query = query.eq("updated_at", expected_updated_at)

        result = query.execute()

        if not result.data:
            if conditional:
                logger.warning(
                    f"OneSheet {onesheet_id} changed since it was read "
                    f"(expected updated_at={expected_updated_at}); write rejected"
                )
                raise ConflictError(
                    "OneSheet was modified by another request; reload and try again"
                )
            raise NotFoundError("OneSheet not found")

        logger.info(f"Updated OneSheet {onesheet_id}: {', '.join(sorted(updates))}")
        return result.data[0]
