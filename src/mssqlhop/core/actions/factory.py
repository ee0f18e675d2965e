"""
Registry of every action, filled by the @ActionFactory.register decorator.
"""

from typing import Callable, Dict, List, Optional, Tuple, Type

from loguru import logger

from mssqlhop.core.actions.base import BaseAction


class ActionFactory:
    _actions: Dict[str, Tuple[Type[BaseAction], str]] = {}

    @classmethod
    def register(
        cls, name: str, description: str
    ) -> Callable[[Type[BaseAction]], Type[BaseAction]]:
        """
        Class decorator registering an action under `name`.

        Raises:
            ValueError: If another action already uses that name
        """

        def decorator(action_class: Type[BaseAction]) -> Type[BaseAction]:
            key = name.lower()
            registered = cls._actions.get(key)
            if registered and registered[0] is not action_class:
                raise ValueError(f"Action '{name}' is already registered")

            cls._actions[key] = (action_class, description)
            return action_class

        return decorator

    @classmethod
    def get_action(cls, name: str) -> Optional[BaseAction]:
        """Returns a fresh instance of the action, or None if unknown."""
        action_class = cls.get_action_type(name)
        if action_class is None:
            logger.debug(f"No action registered as '{name}'")
            return None
        return action_class()

    @classmethod
    def get_action_type(cls, name: str) -> Optional[Type[BaseAction]]:
        entry = cls._actions.get(name.lower()) if name else None
        return entry[0] if entry else None

    @classmethod
    def get_action_description(cls, name: str) -> Optional[str]:
        entry = cls._actions.get(name.lower()) if name else None
        return entry[1] if entry else None

    @classmethod
    def action_exists(cls, name: str) -> bool:
        return bool(name) and name.lower() in cls._actions

    @classmethod
    def list_actions(cls) -> List[str]:
        return sorted(cls._actions)

    @classmethod
    def get_available_actions(cls) -> List[Tuple[str, str, List[str]]]:
        """
        Returns:
            List of tuples: (action_name, description, arguments)
        """
        return [
            (name, description, action_class().get_arguments())
            for name, (action_class, description) in sorted(cls._actions.items())
        ]
