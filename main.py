"""
SmartFlow client entry point
Checks API health, logs in with credentials from the environment and lists projects
"""

import asyncio
import os
import sys

from loguru import logger

from smartflow_client import ServiceClient, load_settings
from smartflow_client.api import AuthService, ProjectService
from smartflow_client.api.models import LoginRequest
from smartflow_client.services import ServiceError


async def main() -> None:
    """Main function"""
    settings = load_settings()
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if settings.debug else settings.log_level)

    logger.info(f"Starting SmartFlow client against {settings.api_url}...")
    client = ServiceClient(settings)
    client.on_session_expired(lambda e: logger.warning(f"Session expired, please log in again: {e}"))

    try:
        if not await client.health_check():
            logger.warning("API health check failed, continuing anyway")

        auth = AuthService(client)
        username = os.getenv("SMARTFLOW_USERNAME")
        password = os.getenv("SMARTFLOW_PASSWORD")
        if username and password:
            logger.info("Logging in...")
            await auth.login(LoginRequest(user_name_or_email=username, password=password))
        elif not auth.is_authenticated():
            logger.info("No credentials configured, requests are sent anonymously")

        projects = await ProjectService(client).get_projects(page_size=20)
        logger.info(f"Found {projects.total_count} projects")
        for project in projects.items:
            logger.info(f"  {project.id}: {project.name}")

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except ServiceError as e:
        logger.error(f"Request failed (correlation_id={e.correlation_id}): {e}")
    finally:
        logger.debug(f"Resilience status: {client.get_health_status()}")
        await client.close()
        logger.info("SmartFlow client stopped")


if __name__ == "__main__":
    asyncio.run(main())
