import os
import re
from io import StringIO
from typing import Any, Optional

import yaml


def pre_process_yaml(config: str) -> str:
    """Replaces blocks of the form {include <source.yaml> <key>} in the given config file, so that parts of
    other config files can be shared, e.g. the location of the observatory.

    Args:
        config: Path of the main yaml file.

    Returns:
        Content of the config file with all include-blocks replaced.
    """
    path = os.path.dirname(os.path.abspath(config))

    # read config
    with open(config, "r") as f:
        content = f.read()

    # find all include statements and their indentation level
    pattern = r"((\s*)?(-\s*)?\{include (\S*)( \S*)?\})"
    for match, indent, tick, filename, key in re.findall(pattern, content):
        with StringIO(pre_process_yaml(os.path.join(path, filename))) as f:
            include = include_parts(yaml.safe_load(f), key)
        text = yaml.dump(include, default_flow_style=False, indent=2).rstrip("\n")

        # keep indentation of include statement
        if tick != "":
            text = tick + text
        if indent != "":
            text = indent + text.replace("\n", indent + " " * len(tick))
        content = content.replace(match, text)

    return content


def include_parts(include: Any, keys: Optional[str]) -> Any:
    """Returns a nested part of an included config.

    Args:
        include: Loaded content of included file.
        keys: Dot-separated path to the requested part, e.g. "observatory.location".

    Returns:
        Requested part of config.
    """
    if keys is None or keys.strip() == "":
        return include
    for key in keys.strip().split("."):
        include = include[key]
    return include


__all__ = ["pre_process_yaml", "include_parts"]
