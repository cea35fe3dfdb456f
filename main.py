"""Entry point: wires all components and starts the gRPC server."""

from __future__ import annotations

import logging
import signal
import sys
from concurrent import futures

import grpc

import config
from adoption.achievements import DEFAULT_ACHIEVEMENTS, AchievementResolver
from adoption.advisory import AdvisoryClient
from adoption.catalogue import ToolCatalogue
from adoption.ledger import ProgressionLedger
from adoption.levels import DEFAULT_LEVELS, LevelResolver
from adoption.recommendations import RecommendationSetManager
from adoption.scoring import ScoringEngine
from adoption.seed import load_tools
from adoption.service import AdoptionServicer, build_handler
from adoption.store import EngagementStore, InMemoryStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_components(
    store: EngagementStore,
    advisory: AdvisoryClient | None = None,
) -> tuple[ToolCatalogue, RecommendationSetManager, ProgressionLedger]:
    """Construct the catalogue, recommendation manager and ledger over *store*.

    Args:
        store: The storage boundary shared by every component.
        advisory: Optional advisory client for recommendation rationale.

    Returns:
        ``(catalogue, manager, ledger)``.  The catalogue is loaded once.
    """
    catalogue = ToolCatalogue(
        store=store,
        refresh_interval_seconds=config.CATALOGUE_REFRESH_INTERVAL_SECONDS,
    )
    catalogue.refresh()

    ledger = ProgressionLedger(
        store=store,
        levels=LevelResolver(store.level_catalog()),
        achievements=AchievementResolver(store.achievement_catalog()),
        max_retries=config.STATS_CAS_MAX_RETRIES,
    )
    manager = RecommendationSetManager(
        store=store,
        catalogue=catalogue,
        scorer=ScoringEngine(),
        ledger=ledger,
        advisory=advisory,
        default_limit=config.NUM_RECOMMENDATIONS,
    )
    return catalogue, manager, ledger


def build_server(manager: RecommendationSetManager, ledger: ProgressionLedger) -> grpc.Server:
    """Construct and configure the gRPC server with all dependencies wired.

    Returns:
        A configured but not-yet-started :class:`grpc.Server`.
    """
    servicer = AdoptionServicer(manager=manager, ledger=ledger)
    server = grpc.server(
        futures.ThreadPoolExecutor(max_workers=config.GRPC_MAX_WORKERS)
    )
    server.add_generic_rpc_handlers((build_handler(servicer),))
    server.add_insecure_port(
        f"{config.GRPC_SERVER_HOST}:{config.GRPC_SERVER_PORT}"
    )
    return server


def main() -> None:
    """Initialise all components and start the gRPC server.

    Startup sequence:
    1. Load the tool catalogue and build the in-memory store.
    2. Create the advisory client if an API key is configured.
    3. Build the catalogue cache, ledger and recommendation manager.
    4. Start background threads (catalogue refresh, optional recommendation refresh).
    5. Register ``SIGTERM``/``SIGINT`` shutdown handlers.
    6. Build and start the gRPC server.
    """
    tools = load_tools(config.TOOL_CATALOGUE_PATH)
    store = InMemoryStore(tools=tools, levels=DEFAULT_LEVELS, achievements=DEFAULT_ACHIEVEMENTS)

    advisory = None
    if config.ADVISORY_API_KEY:
        advisory = AdvisoryClient(
            api_url=config.ADVISORY_API_URL,
            api_key=config.ADVISORY_API_KEY,
            model=config.ADVISORY_MODEL,
            timeout_seconds=config.ADVISORY_TIMEOUT_SECONDS,
        )
        logger.info("Advisory rationale enabled (model %s).", config.ADVISORY_MODEL)

    catalogue, manager, ledger = build_components(store, advisory)
    logger.info(
        "Catalogue loaded: %d tools in %d categories.",
        len(catalogue.get_active_tools()),
        len(catalogue.get_all_categories()),
    )

    catalogue.start_refresh_loop()
    if config.RECOMMENDATION_REFRESH_INTERVAL_SECONDS > 0:
        manager.start_refresh_loop(config.RECOMMENDATION_REFRESH_INTERVAL_SECONDS)

    server = build_server(manager, ledger)

    def handle_shutdown(signum: int, frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down…", sig_name)
        server.stop(grace=5)
        if advisory is not None:
            advisory.close()
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    server.start()
    logger.info(
        "Adoption gRPC server listening on %s:%d",
        config.GRPC_SERVER_HOST,
        config.GRPC_SERVER_PORT,
    )
    server.wait_for_termination()


if __name__ == "__main__":
    main()
