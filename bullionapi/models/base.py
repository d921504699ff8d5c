from sqlalchemy import BigInteger, DateTime, Integer, func
from sqlalchemy.orm import declarative_base, declared_attr, mapped_column

from bullionapi.utils.timezone_utils import utcnow

Base = declarative_base()

# SQLite는 INTEGER PRIMARY KEY 컬럼만 자동 증가시킴
BigIntId = BigInteger().with_variant(Integer, "sqlite")


class TimestampMixin:
    """타임스탬프 필드를 위한 믹스인"""

    @declared_attr
    def created_at(cls):
        return mapped_column(
            DateTime(timezone=True),
            default=utcnow,
            server_default=func.now(),
            nullable=False,
        )

    @declared_attr
    def updated_at(cls):
        return mapped_column(
            DateTime(timezone=True),
            default=utcnow,
            server_default=func.now(),
            onupdate=utcnow,
            nullable=False,
        )


class BaseModel(Base, TimestampMixin):
    """모든 모델의 베이스 클래스"""

    __abstract__ = True

    def dict(self):
        """모델을 딕셔너리로 변환"""
        return {
            column.name: getattr(self, column.name) for column in self.__table__.columns
        }
