"""
Variable Resolver - Resolves {{path}} references against a run's variables

Supports:
- {{name}} - Top-level variable
- Nested paths: {{contact.address.city}}
- Array access: {{httpResponse.items[0].name}}
"""

import re
from typing import Any, Dict, Optional, List
import logging

logger = logging.getLogger(__name__)


class VariableResolver:
    """
    Resolves variable references in node configs and message templates.

    Examples:
        {{name}} -> "Ana"
        {{contact.email}} -> "ana@example.com"
        {{httpResponse.items[0].name}} -> "Product A"
    """

    # Pattern to match {{variable.path}}
    VARIABLE_PATTERN = re.compile(r'\{\{([^}]+)\}\}')

    def __init__(self, variables: Optional[Dict[str, Any]] = None):
        self.variables = variables or {}

    def resolve(self, value: Any) -> Any:
        """
        Resolve variables in value (recursively handles dicts, lists, strings).

        Args:
            value: Value to resolve (can be string, dict, list, or primitive)

        Returns:
            Value with all {{variables}} resolved
        """
        if isinstance(value, str):
            return self._resolve_string(value)
        elif isinstance(value, dict):
            return {k: self.resolve(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [self.resolve(item) for item in value]
        else:
            return value

    def render(self, template: Optional[str]) -> str:
        """Render a template as text (never preserves type)"""
        if template is None:
            return ''

        def replace_var(match):
            value = self.lookup(match.group(1).strip())
            return str(value) if value is not None else ''

        return self.VARIABLE_PATTERN.sub(replace_var, str(template))

    def _resolve_string(self, text: str) -> Any:
        """
        Resolve variables in a string.

        If the ENTIRE string is a single variable reference, return the actual value.
        Otherwise, do string replacement.

        Examples:
            "{{amount}}" -> 1000 (int)
            "Amount: {{amount}}" -> "Amount: 1000" (string)
        """
        match = self.VARIABLE_PATTERN.fullmatch(text)
        if match:
            return self.lookup(match.group(1).strip())

        return self.render(text)

    def lookup(self, path: str) -> Any:
        """
        Resolve a variable path like "contact.name" or "items[0].id".

        Args:
            path: Variable path (without {{}})

        Returns:
            Resolved value or None if not found
        """
        if not path:
            logger.warning("Empty variable path")
            return None

        current: Any = self.variables
        for part in path.split('.'):
            # Handle array access: field[0]
            if '[' in part and part.endswith(']'):
                field_name, index_str = part.split('[', 1)
                index_str = index_str.rstrip(']')

                if field_name:
                    if isinstance(current, dict) and field_name in current:
                        current = current[field_name]
                    else:
                        logger.debug(f"Field not found in path: {field_name}")
                        return None

                try:
                    index = int(index_str)
                except (ValueError, TypeError):
                    logger.debug(f"Invalid array index: {index_str}")
                    return None

                if isinstance(current, list) and 0 <= index < len(current):
                    current = current[index]
                else:
                    logger.debug(f"Invalid array access: index {index} in {path}")
                    return None
            else:
                if isinstance(current, dict):
                    current = current.get(part)
                    if current is None:
                        logger.debug(f"Field not found in path: {part}")
                        return None
                else:
                    logger.debug(f"Cannot navigate path {part} on non-dict value")
                    return None

        return current

    def validate(self, value: Any) -> List[str]:
        """
        Validate that all variables in value can be resolved.

        Returns:
            List of unresolved variable paths (empty if all valid)
        """
        unresolved = []

        def check_value(val):
            if isinstance(val, str):
                for match in self.VARIABLE_PATTERN.finditer(val):
                    var_path = match.group(1).strip()
                    if self.lookup(var_path) is None:
                        unresolved.append(var_path)
            elif isinstance(val, dict):
                for v in val.values():
                    check_value(v)
            elif isinstance(val, list):
                for item in val:
                    check_value(item)

        check_value(value)
        return unresolved
