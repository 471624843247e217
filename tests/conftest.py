"""Shared fixtures: a synthetic penguins table shaped like palmerpenguins."""

import numpy as np
import pandas as pd
import pytest


def make_penguins(n_samples: int = 160, seed: int = 42) -> pd.DataFrame:
    """Males are larger on every measurement, so sex is learnable."""
    rng = np.random.RandomState(seed)

    species = rng.choice(["Adelie", "Chinstrap", "Gentoo"], n_samples)
    island = rng.choice(["Biscoe", "Dream", "Torgersen"], n_samples)
    sex = np.array(["female", "male"] * (n_samples // 2) + ["female"] * (n_samples % 2))
    rng.shuffle(sex)
    is_male = (sex == "male").astype(float)
    is_gentoo = (species == "Gentoo").astype(float)

    return pd.DataFrame({
        "species": species,
        "island": island,
        "bill_length_mm": 39 + 6 * is_gentoo + 3.5 * is_male + rng.randn(n_samples) * 1.5,
        "bill_depth_mm": 18 - 3 * is_gentoo + 1.5 * is_male + rng.randn(n_samples) * 0.6,
        "flipper_length_mm": 190 + 25 * is_gentoo + 7 * is_male + rng.randn(n_samples) * 4,
        "body_mass_g": 3500 + 1400 * is_gentoo + 600 * is_male + rng.randn(n_samples) * 200,
        "sex": sex,
        "year": rng.choice([2007, 2008, 2009], n_samples),
    })


@pytest.fixture
def raw_penguins():
    """Raw table: mixed-case labels and a few penguins without a recorded sex."""
    df = make_penguins()
    df["sex"] = df["sex"].str.capitalize()
    df.loc[[3, 17, 42], "sex"] = np.nan
    df.loc[17, ["bill_length_mm", "bill_depth_mm", "flipper_length_mm", "body_mass_g"]] = np.nan
    return df


@pytest.fixture
def penguins():
    """Clean table with island and year dropped."""
    return make_penguins().drop(columns=["island", "year"])
