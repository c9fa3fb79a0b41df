"""
SimTap Instructions Container

Composes the natural-language instructions sent to the generation backend.

Each MockServer owns its own container, so several simulators can run in
one process without sharing instructions.
"""

import threading
from typing import List, Optional

from .routes import RouteInstruction


class InstructionsContainer:
    """
    Default, global and route-scoped instructions for one simulated API.

    The order returned by ``get_instructions_for_request`` is fixed:
    defaults, then globals, then the first matching route instruction.
    It feeds the cache key, so reordering would invalidate every cached body.

    Example:
        container = InstructionsContainer('Stripe')
        container.add_instruction('Use EUR for all amounts')
        container.add_route_instruction(
            RouteInstruction('/v1/customers/{id}', 'GET', ['Return an active customer'])
        )
        instructions = container.get_instructions_for_request('/v1/customers/cus_1', 'GET')
    """

    def __init__(self, api_name: Optional[str] = None):
        """
        Initialize the container.

        Args:
            api_name: Display name of the simulated API, used in the default
                instructions. Falls back to "API".
        """
        self.api_name = api_name or "API"
        self._defaults: List[str] = [
            f"You are a {self.api_name} API simulator. You only respond to curl commands.",
            "Only output the response body. Always output the full body you would expect from the API.",
            "Generate realistic, properly formatted responses that match the API's expected structure and data types.",
            "Use appropriate HTTP status codes in your responses when applicable.",
        ]
        self._globals: List[str] = []
        self._route_instructions: List[RouteInstruction] = []
        self._lock = threading.Lock()

    @property
    def default_instructions(self) -> List[str]:
        return list(self._defaults)

    @property
    def instructions(self) -> List[str]:
        """Defaults followed by global instructions."""
        with self._lock:
            return self._defaults + self._globals

    @property
    def route_instructions(self) -> List[RouteInstruction]:
        with self._lock:
            return list(self._route_instructions)

    def add_instruction(self, instruction: str) -> None:
        """Add a global instruction that applies to every generated response."""
        if not instruction or not instruction.strip():
            raise ValueError("instruction must be a non-empty string")
        with self._lock:
            self._globals.append(instruction)

    def add_route_instruction(self, route_instruction: RouteInstruction) -> None:
        # No API removes a single route instruction; use clear_instructions.
        with self._lock:
            self._route_instructions.append(route_instruction)

    def clear_instructions(self) -> None:
        """Remove all global and route-scoped instructions. Defaults stay."""
        with self._lock:
            self._globals.clear()
            self._route_instructions.clear()

    def get_instructions_for_request(self, path: str, method: str) -> List[str]:
        """
        Resolve the instructions for one request.

        Args:
            path: Request path
            method: HTTP method

        Returns:
            New list: defaults, globals, then the instructions of the first
            route instruction matching path and method (if any)
        """
        with self._lock:
            instructions = self._defaults + self._globals
            for route_instruction in self._route_instructions:
                if route_instruction.matches(path, method):
                    instructions.extend(route_instruction.instructions)
                    break
        return instructions
