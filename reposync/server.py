"""MCP server exposing repository synchronization as tools."""

import logging
import sys

from mcp.server.fastmcp import FastMCP

from .config import Config, load_configuration, validate_configuration
from .errors import error_handler
from .git_sync import get_sync_manager


def setup_logging(config: Config) -> None:
    """Configure console logging for the reposync loggers."""

    class StructuredFormatter(logging.Formatter):
        def format(self, record):
            if hasattr(record, 'operation'):
                record.msg = f"[{record.operation}] {record.msg}"
            return super().format(record)

    # stdout carries the MCP stdio transport, so logs go to stderr
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr
    )

    formatter = StructuredFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    for logger_name in ('reposync.init', 'reposync.git_sync', 'reposync.error_handler'):
        logger = logging.getLogger(logger_name)
        logger.setLevel(getattr(logging, config.log_level))

        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.propagate = False


def register_tools(server: FastMCP, server_config: Config) -> None:
    """Register MCP tools with the server instance."""

    @server.tool()
    def sync_repository() -> dict:
        """
        Synchronize the configured directory with its remote branch.

        Clones when the directory does not hold a repository yet, otherwise
        fetches and fast-forwards or merges. Returns the sync result;
        ``integrated`` tells whether new content landed.
        """
        try:
            manager = get_sync_manager(server_config)
            result = manager.sync()
            if not result.success:
                response = error_handler.handle_sync_result(result)
                return {**response.to_dict(), "result": result.to_dict()}
            return result.to_dict()
        except Exception as e:
            return error_handler.handle_system_error(e, {"operation": "sync_repository"}).to_dict()

    @server.tool()
    def repository_status() -> dict:
        """
        Report the state of the synchronized directory: tracked branch, HEAD
        commit, remote URL and any merge waiting for conflict resolution.
        """
        try:
            return get_sync_manager(server_config).get_repository_status()
        except Exception as e:
            return error_handler.handle_system_error(e, {"operation": "repository_status"}).to_dict()


def initialize_server() -> FastMCP:
    """Load configuration, set up logging and build the MCP server."""
    server_config = load_configuration()
    validation_issues = validate_configuration(server_config)

    setup_logging(server_config)
    init_logger = logging.getLogger('reposync.init')

    for issue in validation_issues:
        if issue.startswith("ERROR:"):
            init_logger.error(issue[7:])
        elif issue.startswith("WARNING:"):
            init_logger.warning(issue[9:])

    error_count = sum(1 for issue in validation_issues if issue.startswith("ERROR:"))
    if error_count > 0:
        init_logger.critical(f"Server startup failed due to {error_count} configuration error(s)")
        sys.exit(1)

    init_logger.info(
        f"Syncing {server_config.local_path} with {server_config.remote_url} "
        f"({server_config.remote_name}/{server_config.branch})"
    )

    server = FastMCP("reposync", log_level=server_config.log_level)
    register_tools(server, server_config)
    init_logger.info("reposync MCP server initialized")
    return server


def main():
    """Entry point for the reposync MCP server (stdio transport)."""
    try:
        server = initialize_server()
        server.run(transport="stdio")
    except KeyboardInterrupt:
        logging.getLogger('reposync.init').info("Server stopped by user (Ctrl+C)")
    except ValueError as e:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger('reposync.init').critical(f"Server failed to start: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
