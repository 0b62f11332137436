"""Navigator Envelope Meta information.
   Navigator Envelope seals any serializable value with a password
   into a portable, self-describing ciphertext blob.
"""
__title__ = 'navigator_envelope'
__description__ = (
   'Navigator Envelope seals serializable values with a password '
   'into portable AES-GCM ciphertext envelopes.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-envelope'
