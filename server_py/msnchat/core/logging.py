import logging


def setup_logging(level: str = "INFO") -> None:
    """Единая настройка логов для сервера и скриптов."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Логи SQL-движка слишком шумные
    logging.getLogger("sqlalchemy.engine").disabled = True
