"""Headless builder widgets."""

from nlu_studio.widgets.dropdown import ConfirmChange, Dropdown, Option
from nlu_studio.widgets.train_now import ButtonState, TrainNow

__all__ = ["ButtonState", "ConfirmChange", "Dropdown", "Option", "TrainNow"]
