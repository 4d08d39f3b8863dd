from .modes import SAVE, Dispatcher, run_test, save_image

__all__ = ["SAVE", "Dispatcher", "run_test", "save_image"]
