"""Service for deleting sales with stock reversal."""
import logging
from typing import Any, Dict

import sentry_sdk
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from atelier.exceptions import FatalError, NotFoundError
from atelier.models import Sale
from atelier.services import stock_service

logger = logging.getLogger(__name__)


def delete_sale_with_reversal(session: Session, sale_id: int, deleted_by: str = None) -> Dict[str, Any]:
    """
    Delete a sale and give its stock back.

    Steps:
    1. Validate the sale exists
    2. Add back what the sale removed from stock (SALE_DELETED moves)
    3. Delete the sale (lines cascade)
    4. Check the sale row is gone
    5. Commit

    The reversal is additive: stock changes made after the sale are kept.

    Returns:
        dict with the sale id and the stock adjustments applied

    Raises:
        NotFoundError: sale does not exist.
        ConflictError: product rows could not be locked (retryable).
        FatalError: storage failed after stock was restored, or the sale
            survived the delete. The transaction is rolled back.
    """
    # Step 1: Get sale
    sale = session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f'Sale with id={sale_id} was not found')

    try:
        # Step 2: Reverse stock
        adjustments = stock_service.restore_stock_after_sale_deleted(session, sale_id)
    except Exception:
        session.rollback()
        raise

    try:
        # Step 3: Delete sale and lines
        session.delete(sale)
        session.flush()

        # Step 4: Verify
        still_there = session.query(Sale.id).filter(Sale.id == sale_id).first()
        if still_there:
            raise FatalError(f'Sale #{sale_id} is still present after delete')

        # Step 5: Commit
        session.commit()

    except FatalError as e:
        session.rollback()
        _report_fatal(e, sale_id)
        raise
    except SQLAlchemyError as e:
        session.rollback()
        fatal = FatalError(f'Sale #{sale_id} could not be deleted after its stock was restored')
        _report_fatal(e, sale_id)
        raise fatal from e

    stock_service.invalidate_stock_cache()

    logger.info(
        f"Sale #{sale_id} deleted by {deleted_by} - stock restored for "
        f"{len(adjustments)} product(s)"
    )

    return {
        'saleId': sale_id,
        'restored': [a.to_dict() for a in adjustments],
    }


def _report_fatal(error: Exception, sale_id: int) -> None:
    logger.critical(f"Partial delete of sale #{sale_id} rolled back: {error}")
    sentry_sdk.capture_exception(error)
