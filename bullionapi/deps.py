from fastapi import Depends, Request
from sqlalchemy.orm import Session

from bullionapi.database.session import get_db
from bullionapi.services.payment_service import PaymentService


def get_payment_service(request: Request, db: Session = Depends(get_db)) -> PaymentService:
    return request.app.container.services.payment_service(db=db)
