"""shepherd_shared - Shared modules for the bundle-shepherd Lambda functions.

Provides:
    - Runtime settings and KMS secret decryption
    - Tagged error types
    - CodeBuild / CloudWatch client singletons
    - Project naming, provisioning and build dispatch
    - Repository override resolution and GitHub commit statuses
"""

__version__ = "1.0.0"
