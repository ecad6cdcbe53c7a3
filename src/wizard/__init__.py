"""Interactive VM creation wizard."""

from wizard.driver import Draft, Step, WizardContext, WizardDriver

__all__ = ['Draft', 'Step', 'WizardContext', 'WizardDriver']
