"""
Security utilities for the pipeline.

Provides:
- Input sanitization and validation
- Path traversal prevention
- Secrets masking in logs
"""

import re
from pathlib import Path
from typing import Optional


class SecurityError(Exception):
    """Raised when a security violation is detected."""
    pass


class InputValidator:
    """
    Validates and sanitizes inputs that end up in shell commands.
    """

    # Docker reference grammar: lowercase repository components, a tag of up to 128 chars
    REPOSITORY_COMPONENT_PATTERN = re.compile(r'^[a-z0-9]+((\.|_|__|-+)[a-z0-9]+)*$')
    REGISTRY_HOST_PATTERN = re.compile(r'^[A-Za-z0-9]([A-Za-z0-9.-]*[A-Za-z0-9])?(:[0-9]+)?$')
    TAG_PATTERN = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$')

    # Git ref names: no spaces, no shell metacharacters, no "..".
    BRANCH_PATTERN = re.compile(r'^[A-Za-z0-9._/-]+$')

    # Build numbers become file names and image tags
    BUILD_NUMBER_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$')

    @staticmethod
    def sanitize_path(path: str, base_dir: Optional[Path] = None) -> Path:
        """
        Sanitize a file path to prevent directory traversal.

        Args:
            path: Path relative to base_dir, or absolute
            base_dir: Base directory to restrict access to

        Returns:
            Sanitized Path object

        Raises:
            SecurityError: If path attempts traversal or is outside base_dir
        """
        if ".." in Path(path).parts:
            raise SecurityError("Path traversal detected: '..' not allowed")

        candidate = Path(path)
        if base_dir and not candidate.is_absolute():
            candidate = Path(base_dir) / candidate

        try:
            sanitized = candidate.resolve()
        except (ValueError, OSError) as e:
            raise SecurityError(f"Invalid path: {e}")

        if base_dir:
            base_resolved = Path(base_dir).resolve()
            try:
                sanitized.relative_to(base_resolved)
            except ValueError:
                raise SecurityError(
                    f"Path {path} is outside allowed directory {base_dir}"
                )

        return sanitized

    @staticmethod
    def validate_docker_image(image_name: str) -> bool:
        """
        Validate Docker image reference format.

        Args:
            image_name: Image reference (e.g., "registry.io/team/webapp:42")

        Returns:
            True if valid

        Raises:
            SecurityError: If image name is invalid
        """
        if any(char in image_name for char in ["$", "`", ";", " "]):
            raise SecurityError(
                f"Suspicious characters in Docker image name: {image_name}"
            )

        repository, tag = image_name, None
        if image_name.rfind(":") > image_name.rfind("/"):
            repository, tag = image_name.rsplit(":", 1)

        if tag is not None and not InputValidator.TAG_PATTERN.match(tag):
            raise SecurityError(f"Invalid Docker image tag {tag!r} in {image_name}")

        components = repository.split("/")
        # A leading component with a dot, a port or "localhost" names the registry
        if len(components) > 1 and (
            "." in components[0] or ":" in components[0] or components[0] == "localhost"
        ):
            registry = components.pop(0)
            if not InputValidator.REGISTRY_HOST_PATTERN.match(registry):
                raise SecurityError(f"Invalid registry host {registry!r} in {image_name}")

        if not all(InputValidator.REPOSITORY_COMPONENT_PATTERN.match(part) for part in components):
            raise SecurityError(
                f"Invalid Docker image name: {image_name}"
            )

        return True

    @staticmethod
    def validate_build_number(build_number: str) -> bool:
        """
        Validate a build number before it is used as an image tag or file name.

        Raises:
            SecurityError: If the build number is empty or contains path separators
        """
        if not InputValidator.BUILD_NUMBER_PATTERN.match(build_number or ""):
            raise SecurityError(f"Invalid build number: {build_number!r}")
        return True

    @staticmethod
    def validate_branch_name(branch: str) -> bool:
        """
        Validate a git branch name before it is placed on a command line.

        Raises:
            SecurityError: If the name is empty or unsafe
        """
        if not branch or ".." in branch or not InputValidator.BRANCH_PATTERN.match(branch):
            raise SecurityError(f"Invalid branch name: {branch!r}")
        return True

    @staticmethod
    def validate_env_var_name(name: str) -> bool:
        """
        Validate environment variable name.

        Raises:
            SecurityError: If name is invalid
        """
        if not re.match(r'^[A-Z_][A-Z0-9_]*$', name):
            raise SecurityError(
                f"Invalid environment variable name: {name}"
            )

        return True


class SecretsMasker:
    """
    Masks secrets in logs and output to prevent exposure.
    """

    # Common secret patterns
    SECRET_PATTERNS = [
        (re.compile(r'(ghp_[a-zA-Z0-9]{36})'), 'GITHUB_TOKEN'),
        (re.compile(r'(gho_[a-zA-Z0-9]{36})'), 'GITHUB_OAUTH_TOKEN'),
        (re.compile(r'(dckr_pat_[a-zA-Z0-9_-]{20,})'), 'DOCKER_TOKEN'),
        (re.compile(r'(npm_[a-zA-Z0-9]{36})'), 'NPM_TOKEN'),
        (re.compile(r'(AIza[a-zA-Z0-9_-]{35})'), 'GOOGLE_API_KEY'),
        (re.compile(r'(xox[baprs]-[a-zA-Z0-9-]+)'), 'SLACK_TOKEN'),
    ]

    # Values registered at runtime, e.g. a resolved registry password
    _known_secrets: set = set()

    @classmethod
    def register(cls, secret: str) -> None:
        """Mask this exact value wherever it appears from now on."""
        if secret:
            cls._known_secrets.add(secret)

    @classmethod
    def mask_secrets(cls, text: str) -> str:
        """
        Mask secrets in text.

        Args:
            text: Text that may contain secrets

        Returns:
            Text with secrets masked
        """
        masked = text

        for secret in sorted(cls._known_secrets, key=len, reverse=True):
            masked = masked.replace(secret, "***REDACTED***")

        for pattern, name in cls.SECRET_PATTERNS:
            masked = pattern.sub(f'***{name}***', masked)

        # Also mask common env var patterns
        masked = re.sub(
            r'(password|token|secret|_PSW)[\s=:]+[^\s]+',
            r'\1=***REDACTED***',
            masked,
            flags=re.IGNORECASE
        )

        return masked
