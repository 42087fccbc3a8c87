"""
Broker Operator — entrypoint.

Sets up logging, then runs kopf with the handlers from
broker_operator.operator (cluster-wide unless WATCH_NAMESPACES is set).
"""
import logging

import kopf

from broker_operator.config import settings


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format=settings.LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("broker-operator")
    logger.info("Broker Operator starting...")

    import broker_operator.operator  # noqa: F401  registers the kopf handlers

    kopf.run(
        clusterwide=settings.clusterwide,
        namespaces=list(settings.WATCH_NAMESPACES),
        liveness_endpoint=settings.LIVENESS_ENDPOINT or None,
    )


if __name__ == "__main__":
    main()
