# create_db.py
"""
Создаёт базу данных из конфигурации, если её ещё нет.
Схема применяется отдельно: python main.py migrate
"""

import asyncio

import asyncpg

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, setup_logging
from src.config import settings


async def create_db() -> bool:
    db_name = settings.database.DB_NAME
    try:
        # Подключаемся к служебной БД postgres, чтобы создать новую
        sys_conn = await asyncpg.connect(
            user=settings.database.DB_USER,
            password=settings.database.DB_PASSWORD,
            host=settings.database.DB_HOST,
            port=settings.database.DB_PORT,
            database="postgres",
        )
    except (asyncpg.PostgresError, OSError) as e:
        await log_error(f"Не удалось подключиться к PostgreSQL: {e}")
        return False

    try:
        exists = await sys_conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name)
        if exists:
            await log_info(f"База данных {db_name} уже существует", type_msg=TypeMsg.INFO)
            return True

        # Имя БД нельзя передать параметром
        await sys_conn.execute(f'CREATE DATABASE "{db_name}"')
        await log_info(f"База данных {db_name} создана", type_msg=TypeMsg.INFO)
        return True
    except asyncpg.PostgresError as e:
        await log_error(f"Ошибка создания базы данных {db_name}: {e}")
        return False
    finally:
        await sys_conn.close()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(create_db())
