from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.base import Base
import enum


class UserRole(enum.Enum):
    USER = "user"          # Арендатор
    CLIENT = "client"      # Владелец транспорта (бизнес-аккаунт)
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)

    # Роль
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)

    # Данные бизнеса (только для владельцев)
    business_name = Column(String(255), nullable=True)

    # Push-токены Expo ("ExponentPushToken[...]")
    push_tokens = Column(JSON, default=list, nullable=False)

    # Временные метки
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Связи
    vehicles = relationship("Vehicle", back_populates="owner")
    notifications = relationship("Notification", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT
