# provisioner/utils.py
import logging
import os
import random
import string

LABEL_LENGTH = 5


def generate_unique_label(length=LABEL_LENGTH):
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def set_output(name, value):
    """
    Publish a step output. Appends `name=value` to $GITHUB_OUTPUT when running
    inside Actions; the value is logged either way.
    """
    output_path = os.getenv("GITHUB_OUTPUT")
    if output_path:
        with open(output_path, "a") as f:
            f.write(f"{name}={value}\n")
    logging.info(f"Output {name}={value}")
