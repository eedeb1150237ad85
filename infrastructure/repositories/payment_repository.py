"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import PaymentAlreadyExistsException
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel

logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            user_id=model.user_id,
            order_id=model.order_id,
            processor=model.processor,
            processor_order_id=model.processor_order_id,
            amount=int(model.amount),
            status=PaymentStatus(model.status),
            product_name=model.product_name,
            metadata=model.extra_metadata or {},
            purchased_at=model.purchased_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        model = PaymentModel(
            id=entity.id,
            user_id=entity.user_id,
            order_id=entity.order_id,
            processor=entity.processor,
            processor_order_id=entity.processor_order_id,
            amount=entity.amount,
            status=entity.status.value,
            product_name=entity.product_name,
            extra_metadata=entity.metadata,
            purchased_at=entity.purchased_at,
        )
        # 未赋值的时间戳交给列默认值
        if entity.created_at:
            model.created_at = entity.created_at
        if entity.updated_at:
            model.updated_at = entity.updated_at
        return model

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        try:
            db_payment = self._to_model(payment)
            self.session.add(db_payment)
            await self.session.flush()
            await self.session.refresh(db_payment)
            logger.info(
                "payment_created",
                payment_id=db_payment.id,
                processor=db_payment.processor,
                order_id=db_payment.processor_order_id,
            )
            return self._to_entity(db_payment)
        except IntegrityError as e:
            await self.session.rollback()
            msg = str(e).lower()
            if "processor_order" in msg:
                logger.warning(
                    "payment_create_conflict",
                    processor=payment.processor,
                    order_id=payment.processor_order_id,
                )
                raise PaymentAlreadyExistsException(payment.processor, payment.processor_order_id)
            raise

    async def get_by_processor_order(self, processor: str, processor_order_id: str) -> Optional[Payment]:
        """根据幂等键获取支付"""
        result = await self.session.execute(
            select(PaymentModel).where(
                PaymentModel.processor == processor,
                PaymentModel.processor_order_id == processor_order_id,
            )
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        result = await self.session.execute(select(PaymentModel).where(PaymentModel.id == payment.id))
        db_payment = result.scalar_one_or_none()

        if not db_payment:
            raise ValueError(f"Payment with id {payment.id} not found")

        db_payment.amount = payment.amount
        db_payment.status = payment.status.value
        db_payment.product_name = payment.product_name
        db_payment.extra_metadata = payment.metadata
        db_payment.updated_at = payment.updated_at or db_payment.updated_at
        if payment.user_id and not db_payment.user_id:
            db_payment.user_id = payment.user_id

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.info(
            "payment_updated",
            payment_id=db_payment.id,
            processor=db_payment.processor,
            order_id=db_payment.processor_order_id,
            status=db_payment.status,
        )
        return self._to_entity(db_payment)

    async def list_by_user(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Payment]:
        """获取用户的支付列表"""
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.user_id == user_id)
            .order_by(PaymentModel.purchased_at.desc(), PaymentModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(model) for model in result.scalars().all()]

    async def count(self, processor: Optional[str] = None) -> int:
        """统计支付数量"""
        query = select(func.count()).select_from(PaymentModel)
        if processor:
            query = query.where(PaymentModel.processor == processor)
        result = await self.session.execute(query)
        return int(result.scalar_one())

    async def delete_all(self) -> int:
        """删除全部支付记录（调用方负责事务边界）"""
        result = await self.session.execute(delete(PaymentModel))
        deleted = result.rowcount or 0
        logger.warning("payments_deleted", count=deleted)
        return deleted
