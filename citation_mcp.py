#!/usr/bin/env python3
"""
Citation Checker MCP Server - Verify, fix and extract academic citations
Standalone implementation compatible with Python 3.9+

Provides tools for checking whether a citation refers to a real published
work, suggesting corrections for broken citations, and pulling citation
strings out of document text.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from citation_checker import __version__
from citation_checker.citation_fixer import CitationFixer
from citation_checker.config import LOGGING_CONFIG
from citation_checker.document_parser import DocumentParser
from citation_checker.errors import InputError
from citation_checker.sources import create_http_client
from citation_checker.verification_engine import VerificationEngine

logger = logging.getLogger("citation_mcp")

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def configure_logging(level: Optional[str] = None):
    """Log to stderr; stdout carries the JSON-RPC stream."""
    logging.basicConfig(
        level=level or LOGGING_CONFIG["level"],
        format=LOGGING_CONFIG["format"],
        stream=sys.stderr,
    )


# MCP Protocol Implementation
class MCPServer:
    """Standalone MCP server using JSON-RPC over stdio"""

    def __init__(self, engine: Optional[VerificationEngine] = None,
                 fixer: Optional[CitationFixer] = None,
                 document_parser: Optional[DocumentParser] = None):
        self._http_client = None
        if engine is None or fixer is None:
            self._http_client = create_http_client()
        self.engine = engine or VerificationEngine(http_client=self._http_client)
        self.fixer = fixer or CitationFixer(http_client=self._http_client)
        self.document_parser = document_parser or DocumentParser()

        self.tools = {
            "verify_citation": self._handle_verify_citation,
            "verify_citations": self._handle_verify_citations,
            "fix_citation": self._handle_fix_citation,
            "extract_citations": self._handle_extract_citations,
        }

    def get_tools_list(self) -> List[Dict[str, Any]]:
        """Return list of available tools"""
        return [
            {
                "name": "verify_citation",
                "description": (
                    "Check whether a free-text academic citation refers to a real published work. "
                    "Returns a 0-100 score, a status (verified, likely, uncertain, not_verified, "
                    "incomplete, fake, not_found) and a per-source audit trail."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "citation": {
                            "type": "string",
                            "description": "Citation text in any common style (APA, MLA, Chicago, ...)"
                        },
                        "user_email": {
                            "type": "string",
                            "description": "Optional requester email, logged only"
                        }
                    },
                    "required": ["citation"]
                }
            },
            {
                "name": "verify_citations",
                "description": (
                    "Verify a list of citations concurrently and return per-citation results "
                    "with a status summary."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "citations": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Citation strings (max 50)"
                        },
                        "max_concurrent": {
                            "type": "integer",
                            "description": "Concurrent verifications (default: 5)",
                            "default": 5
                        }
                    },
                    "required": ["citations"]
                }
            },
            {
                "name": "fix_citation",
                "description": (
                    "Suggest a corrected citation for broken or malformed input, rebuilt from "
                    "database metadata in APA, MLA and Chicago, or from an LLM as a fallback."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "citation": {
                            "type": "string",
                            "description": "Citation text to fix"
                        }
                    },
                    "required": ["citation"]
                }
            },
            {
                "name": "extract_citations",
                "description": (
                    "Pull candidate citation strings out of plain document text "
                    "(e.g. text extracted from a PDF)."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "text": {
                            "type": "string",
                            "description": "Raw document text"
                        }
                    },
                    "required": ["text"]
                }
            }
        ]

    async def _handle_verify_citation(self, args: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.engine.verify(args.get("citation", ""), args.get("user_email"))
        return result.to_dict()

    async def _handle_verify_citations(self, args: Dict[str, Any]) -> Dict[str, Any]:
        citations = args.get("citations")
        if not isinstance(citations, list) or not citations:
            raise InputError("citations must be a non-empty list of strings")
        try:
            max_concurrent = max(1, min(int(args.get("max_concurrent", 5)), 10))
        except (TypeError, ValueError):
            raise InputError("max_concurrent must be an integer")

        results = await self.engine.verify_batch(citations, max_concurrent=max_concurrent)
        return {
            "results": [r.to_dict() for r in results],
            "summary": self.engine.summarize(results),
        }

    async def _handle_fix_citation(self, args: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.fixer.fix(args.get("citation", ""))
        return result.to_dict()

    async def _handle_extract_citations(self, args: Dict[str, Any]) -> Dict[str, Any]:
        citations = self.document_parser.extract_citations(args.get("text", ""))
        return {
            "citations_found": len(citations),
            "citations": citations,
            "message": f"Found {len(citations)} potential citations",
        }

    def _error(self, request_id, code: int, message: str) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": {
                "code": code,
                "message": message
            }
        }

    async def handle_request(self, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Handle incoming JSON-RPC request"""
        if not isinstance(request, dict):
            return self._error(None, INVALID_REQUEST, "Invalid request")

        method = request.get("method", "")
        params = request.get("params") or {}
        request_id = request.get("id")

        try:
            if method == "initialize":
                result = {
                    "protocolVersion": "2024-11-05",
                    "capabilities": {
                        "tools": {}
                    },
                    "serverInfo": {
                        "name": "citation-checker",
                        "version": __version__
                    }
                }
            elif method == "notifications/initialized":
                return None  # No response for notifications
            elif method == "tools/list":
                result = {"tools": self.get_tools_list()}
            elif method == "tools/call":
                tool_name = params.get("name", "")
                tool_args = params.get("arguments") or {}

                if tool_name not in self.tools:
                    return self._error(request_id, METHOD_NOT_FOUND, f"Unknown tool: {tool_name}")

                tool_result = await self.tools[tool_name](tool_args)
                result = {
                    "content": [
                        {
                            "type": "text",
                            "text": json.dumps(tool_result, indent=2)
                        }
                    ]
                }
            else:
                return self._error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

            return {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": result
            }

        except InputError as e:
            return self._error(request_id, INVALID_PARAMS, str(e))
        except Exception as e:
            logger.exception("Request %s failed", method)
            return self._error(request_id, INTERNAL_ERROR, str(e))

    async def close(self):
        await self.engine.close()
        await self.fixer.close()
        if self._http_client is not None:
            await self._http_client.aclose()

    async def run(self):
        """Run the MCP server over stdio"""
        logger.info("Citation Checker MCP Server %s started", __version__)

        loop = asyncio.get_event_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout
        )
        writer = asyncio.StreamWriter(writer_transport, writer_protocol, None, loop)

        try:
            while True:
                line = await reader.readline()
                if not line:
                    break

                try:
                    request = json.loads(line.decode('utf-8'))
                except json.JSONDecodeError as e:
                    response = self._error(None, PARSE_ERROR, f"Parse error: {e}")
                else:
                    response = await self.handle_request(request)

                if response is not None:
                    writer.write(json.dumps(response).encode('utf-8') + b'\n')
                    await writer.drain()
        finally:
            await self.close()


async def main():
    configure_logging()
    server = MCPServer()
    await server.run()


def run():
    """Console-script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
