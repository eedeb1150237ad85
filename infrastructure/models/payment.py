"""
对账后的支付记录

每个 (processor, processor_order_id) 只对应一行，重复导入只会更新它。
"""
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from .base import Base, TimestampMixin


class PaymentModel(TimestampMixin, Base):
    """业务规则在 domain.payment.entity.Payment 中"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="所属用户ID",
    )

    # 订单信息（幂等键：processor + processor_order_id）
    order_id = Column(String(191), nullable=False, comment="渠道订单ID")
    processor = Column(String(50), nullable=False, index=True, comment="支付渠道: lemonsqueezy/polar/stripe")
    processor_order_id = Column(String(191), nullable=False, comment="渠道订单ID（幂等键）")

    # 金额（最小货币单位，分）
    amount = Column(Integer, nullable=False, default=0, comment="金额（分）")
    status = Column(String(20), nullable=False, default="completed", index=True, comment="completed/refunded/pending")
    product_name = Column(String(255), nullable=False, default="Unknown Product", comment="商品名称")

    # 扩展元数据（列名 metadata 与 Declarative 保留属性冲突，属性名改为 extra_metadata）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="商品/规格名冗余字段 + 原始渠道数据")

    purchased_at = Column(DateTime(timezone=True), nullable=True, comment="购买时间")

    __table_args__ = (
        UniqueConstraint("processor", "processor_order_id", name="uq_payments_processor_order"),
        Index("ix_payments_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return f"<PaymentModel(id={self.id}, processor='{self.processor}', order='{self.processor_order_id}')>"
