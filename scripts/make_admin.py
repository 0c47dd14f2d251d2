import asyncio
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database.base import async_session_factory, init_db
from database.models.user import User, UserRole
from sqlalchemy import select


async def make_admin(email: str):
    """Назначить пользователя администратором"""
    await init_db()
    
    async with async_session_factory() as session:
        # Находим пользователя по email
        result = await session.execute(
            select(User).where(User.email == email.strip().lower())
        )
        user = result.scalar_one_or_none()
        
        if not user:
            print(f"❌ Пользователь с email {email} не найден в базе данных")
            return
        
        old_role = user.role.value
        user.role = UserRole.ADMIN
        
        await session.commit()
        
        print(f"✅ Пользователь {user.full_name} (ID: {user.id}) назначен администратором")
        print(f"🔄 Роль изменена: {old_role} → {user.role.value}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Использование: python scripts/make_admin.py <email>")
        sys.exit(1)
    asyncio.run(make_admin(sys.argv[1]))
