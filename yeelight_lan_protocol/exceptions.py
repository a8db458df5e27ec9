#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class YeelightError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class BindError(YeelightError):
  """The discovery socket could not be bound. Fatal; the listener cannot run."""
  pass

class MalformedMessage(YeelightError):
  """A discovery datagram could not be split into header lines."""
  pass

class TransportError(YeelightError):
  """A control connection failed to open, or failed while reading or writing."""
  pass

class PreconditionError(YeelightError):
  """A control command was issued on a device that is not connected."""
  pass
