# -- Grid SPH Error Types -- #

'''
Exceptions and warnings raised by the grid SPH pipeline.

ConfigurationError fails fast before any step runs. Numerical
trouble inside a step is reported with NumericalInstabilityWarning
(clamp policy) or NumericalInstabilityError (abort policy).
PipelineOrderingError signals a programming error and is never
expected at runtime.
'''


class ConfigurationError(ValueError):
    '''Invalid simulation constants, particle buffers or grid capacity.'''


class NumericalInstabilityWarning(RuntimeWarning):
    '''Density or state values left the range the kernels are defined on.'''


class NumericalInstabilityError(ArithmeticError):
    '''
    Raised instead of a warning when the abort policy is selected.

    The step that raised it is not committed.
    '''


class PipelineOrderingError(RuntimeError):
    '''A stage observed a buffer that its producer stage did not finish.'''
