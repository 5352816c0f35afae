# chatfs: Load prompt and message templates from chatfs.resources via importlib.resources and
# optionally format them with dynamic values.

from importlib import resources


def get_prompt(name: str, **kwargs) -> str:
    """
    Load a text template from the chatfs.resources package.

    If kwargs are provided, apply str.format(**kwargs) to the template. Braces inside the
    substituted values (file contents, descriptions) are not re-interpreted. Without kwargs
    the raw text is returned.
    """
    data = resources.files("chatfs.resources").joinpath(name).read_text(encoding="utf-8")
    if kwargs:
        return data.format(**kwargs)
    return data
