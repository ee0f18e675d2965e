from collections import defaultdict
from typing import List, Tuple
from loguru import logger

from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.exceptions import ActionNotFoundError
from mssqlhop.core.utils.formatters import OutputFormatter

# Action subpackage -> heading
CATEGORIES = {
    "execution": "Execution",
    "database": "Database",
    "remote": "Linked servers",
}


def get_all_actions_info() -> List[Tuple[str, str, List[str]]]:
    """
    Get information about all available actions.

    Returns:
        List of tuples: (action_name, description, arguments)
    """
    return ActionFactory.get_available_actions()


def action_exists(command_name: str) -> bool:
    return ActionFactory.action_exists(command_name)


def action_category(command_name: str) -> str:
    """Heading of an action, from the subpackage defining it."""
    action_class = ActionFactory.get_action_type(command_name)
    if action_class is None:
        return "Other"

    package = action_class.__module__.split(".")[-2]
    return CATEGORIES.get(package, "Other")


def display_actions_by_category() -> None:
    categorized = defaultdict(list)
    for name, description, arguments in get_all_actions_info():
        categorized[action_category(name)].append(
            {"Action": name, "Description": description, "Arguments": len(arguments)}
        )

    for category in sorted(categorized):
        print(f"\n{category}:")
        print(OutputFormatter.convert_list_of_dicts(categorized[category]))
    print()


def display_all_commands(prefix: str = "!") -> None:
    """
    Display all available commands with descriptions and arguments.
    """
    actions = get_all_actions_info()

    if not actions:
        logger.warning("No actions registered")
        return

    display_actions_by_category()

    print("Terminal commands:")
    print(f"  {prefix}debug            Toggle debug logging")
    print(f"  {prefix}format [name]    Show or change the output format")
    print(f"  {prefix}help [command]   Show this help, or the help of one command")
    print()
    logger.info(f"{len(actions)} commands available. Usage: {prefix}<command> [arguments]")


def display_command_help(command_name: str) -> None:
    """
    Display help for a specific command.

    Raises:
        ActionNotFoundError: If no action is registered under that name
    """
    action = ActionFactory.get_action(command_name)
    if action is None:
        raise ActionNotFoundError(command_name)

    print()
    print(f"{command_name.upper()} - {ActionFactory.get_action_description(command_name)}")
    print()
    print(action.get_help())
    print()

    arguments = action.get_arguments()
    if arguments:
        print("Arguments:")
        for i, arg in enumerate(arguments, 1):
            print(f"  {i}. {arg}")
    else:
        print("Arguments: None")
    print()


def find_commands(keyword: str) -> List[Tuple[str, str]]:
    """Commands whose name or description contains `keyword`, case-insensitively."""
    keyword = keyword.lower()
    return [
        (name, description)
        for name, description, _ in get_all_actions_info()
        if keyword in name.lower() or keyword in description.lower()
    ]


def display_matching_commands(keyword: str) -> None:
    matching = find_commands(keyword)

    if not matching:
        logger.warning(f"No actions found matching '{keyword}'")
        return

    print(
        OutputFormatter.convert_list_of_dicts(
            [{"Action": name, "Description": description} for name, description in matching]
        )
    )
    logger.info(f"Found {len(matching)} action(s). Use '-h <action>' for details.")


def list_all_commands() -> List[str]:
    """
    Get a simple list of all command names.

    Returns:
        List of command names
    """
    return ActionFactory.list_actions()
