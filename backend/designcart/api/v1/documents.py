"""
单据 API：账单与发票 HTML
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.api.v1.auth import get_current_active_user
from designcart.core.database import get_db
from designcart.schemas.auth import UserResponse
from designcart.schemas.billing import BillDocumentResponse, DocumentRequest, InvoiceDocumentResponse
from designcart.services.document_service import DocumentService

router = APIRouter()


@router.post("/bill/generate", response_model=BillDocumentResponse)
async def generate_bill(
    body: DocumentRequest,
    current_user: UserResponse = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """生成单个订单的账单"""
    return await DocumentService(db).render_bill_for_order(current_user.id, body.order_id)


@router.post("/invoice/generate", response_model=InvoiceDocumentResponse)
async def generate_invoice(
    body: DocumentRequest,
    current_user: UserResponse = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """生成订单所在结算批次的合并发票"""
    return await DocumentService(db).render_invoice_for_order(current_user.id, body.order_id)
