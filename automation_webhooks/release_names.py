"""
Friendly names for releases, like "Energetic Eagle".
"""

import random
import string

from unique_names_generator.data import ADJECTIVES, ANIMALS


def _words_starting_with(words, letter):
    # Release titles only allow letters and spaces in the name.
    return [word for word in words if word.isalpha() and word.lower().startswith(letter)]


def generate_release_name(rng=random) -> str:
    """
    Make an alliterative release name, like "Energetic Eagle".

    A letter is picked at random, then an adjective and an animal starting
    with it.  Letters without both an adjective and an animal are skipped.
    """
    while True:
        letter = rng.choice(string.ascii_lowercase)
        adjectives = _words_starting_with(ADJECTIVES, letter)
        animals = _words_starting_with(ANIMALS, letter)
        if adjectives and animals:
            break
    return f"{rng.choice(adjectives).title()} {rng.choice(animals).title()}"
