"""
Correlation Filter for Single-Object Tracking.

Follows one image region from frame to frame and reports how confident
it is that the region was found again.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import cv2
import numpy as np
from numpy.typing import NDArray

from facemanager.core.contracts import Rectangle
from facemanager.core.errors import TrackerFailure


class TrackerPrimitive(ABC):
    """
    A single-object tracker.

    Implementations are started once on a region and then advanced one
    frame at a time. update() returns a confidence where larger is better.
    """

    @abstractmethod
    def start_track(self, image: NDArray[np.uint8], rectangle: Rectangle):
        """Start tracking the region of image covered by rectangle."""

    @abstractmethod
    def update(self, image: NDArray[np.uint8]) -> float:
        """Advance to the next image and return the tracking confidence."""

    @abstractmethod
    def get_position(self) -> Rectangle:
        """Current estimate of the tracked region."""


class CorrelationTracker(TrackerPrimitive):
    """
    MOSSE correlation filter tracker.

    The filter is learned in the Fourier domain from the initial patch and
    a few random affine perturbations of it, then adapted with a running
    average on every update.

    Confidence is the peak-to-sidelobe ratio (PSR) of the correlation
    response: (peak - mean(sidelobe)) / std(sidelobe). Values around 20 or
    more indicate a strong lock; values under 7 usually mean the target
    was lost.
    """

    def __init__(
        self,
        learning_rate: float = 0.125,
        sigma: float = 2.0,
        num_perturbations: int = 8,
        sidelobe_exclusion: int = 5,
        regularization: float = 1e-3,
        min_size: int = 8,
        seed: Optional[int] = 0,
    ):
        """
        Initialize correlation tracker.

        Args:
            learning_rate: Weight of the newest frame in the filter running average
            sigma: Width of the Gaussian target response in pixels
            num_perturbations: Number of perturbed copies used to train the initial filter
            sidelobe_exclusion: Half size of the window around the peak excluded from the sidelobe
            regularization: Added to the filter denominator to avoid division by zero
            min_size: Minimum patch width and height
            seed: Seed for the perturbation random generator
        """
        self.learning_rate = learning_rate
        self.sigma = sigma
        self.num_perturbations = num_perturbations
        self.sidelobe_exclusion = sidelobe_exclusion
        self.regularization = regularization
        self.min_size = min_size
        self._rng = np.random.default_rng(seed)

        # Patch geometry
        self._size: Tuple[int, int] = (0, 0)  # (w, h)
        self._center: Tuple[float, float] = (0.0, 0.0)

        # Filter numerator and denominator (Fourier domain)
        self._A: Optional[NDArray[np.complex128]] = None
        self._B: Optional[NDArray[np.complex128]] = None
        self._G: Optional[NDArray[np.complex128]] = None
        self._window: Optional[NDArray[np.float32]] = None

        self.age = 0
        self.last_psr = 0.0

    @property
    def is_started(self) -> bool:
        return self._A is not None

    def start_track(self, image: NDArray[np.uint8], rectangle: Rectangle):
        """
        Initialize the filter on a region.

        Args:
            image: BGR or grayscale frame
            rectangle: Region to track (may extend past the image border)
        """
        if rectangle.width < self.min_size or rectangle.height < self.min_size:
            raise TrackerFailure(f"Region too small to track: {rectangle}")

        gray = self._to_gray(image)

        w, h = rectangle.width, rectangle.height
        self._size = (w, h)
        x_c = rectangle.left + (rectangle.width - 1) / 2.0
        y_c = rectangle.top + (rectangle.height - 1) / 2.0
        self._center = (x_c, y_c)

        self._window = cv2.createHanningWindow((w, h), cv2.CV_32F)
        self._G = np.fft.fft2(self._gaussian_response(w, h))

        patch = self._crop(gray)
        F = np.fft.fft2(self._preprocess(patch))
        self._A = self._G * np.conj(F)
        self._B = F * np.conj(F)

        for _ in range(self.num_perturbations):
            warped = self._random_warp(patch)
            F = np.fft.fft2(self._preprocess(warped))
            self._A += self._G * np.conj(F)
            self._B += F * np.conj(F)

        self.age = 0
        self.last_psr = 0.0

    def update(self, image: NDArray[np.uint8]) -> float:
        """
        Locate the target in a new frame.

        Returns:
            Peak-to-sidelobe ratio of the correlation response
        """
        if not self.is_started:
            raise TrackerFailure("Tracker updated before start_track")

        gray = self._to_gray(image)
        w, h = self._size

        F = np.fft.fft2(self._preprocess(self._crop(gray)))
        H = self._A / (self._B + self.regularization)
        response = np.real(np.fft.ifft2(H * F))

        peak_y, peak_x = np.unravel_index(np.argmax(response), response.shape)
        psr = self._psr(response, peak_x, peak_y)

        # Response is centred on the patch centre
        dx = peak_x - w // 2
        dy = peak_y - h // 2
        self._center = (self._center[0] + dx, self._center[1] + dy)

        # Adapt the filter at the new location
        F = np.fft.fft2(self._preprocess(self._crop(gray)))
        rate = self.learning_rate
        self._A = rate * (self._G * np.conj(F)) + (1 - rate) * self._A
        self._B = rate * (F * np.conj(F)) + (1 - rate) * self._B

        self.age += 1
        self.last_psr = psr
        return psr

    def get_position(self) -> Rectangle:
        """Get current position as a rectangle."""
        w, h = self._size
        left = int(round(self._center[0] - (w - 1) / 2.0))
        top = int(round(self._center[1] - (h - 1) / 2.0))
        return Rectangle(left, top, left + w - 1, top + h - 1)

    def _psr(self, response: NDArray[np.float64], peak_x: int, peak_y: int) -> float:
        peak = response[peak_y, peak_x]
        r = self.sidelobe_exclusion

        mask = np.ones(response.shape, dtype=bool)
        mask[max(0, peak_y - r):peak_y + r + 1, max(0, peak_x - r):peak_x + r + 1] = False
        sidelobe = response[mask]

        if sidelobe.size == 0:
            raise TrackerFailure("Tracked patch too small for a sidelobe")

        std = sidelobe.std()
        if not np.isfinite(peak) or not np.isfinite(std) or std <= 0:
            raise TrackerFailure("Degenerate correlation response")

        return float((peak - sidelobe.mean()) / std)

    def _crop(self, gray: NDArray[np.float32]) -> NDArray[np.float32]:
        # Border pixels are replicated when the patch leaves the image
        return cv2.getRectSubPix(gray, self._size, self._center)

    def _preprocess(self, patch: NDArray[np.float32]) -> NDArray[np.float32]:
        patch = np.log(patch + 1.0)
        patch = (patch - patch.mean()) / (patch.std() + 1e-5)
        return patch * self._window

    def _gaussian_response(self, w: int, h: int) -> NDArray[np.float32]:
        xs = np.arange(w, dtype=np.float32) - w // 2
        ys = np.arange(h, dtype=np.float32) - h // 2
        xx, yy = np.meshgrid(xs, ys)
        g = np.exp(-(xx ** 2 + yy ** 2) / (2 * self.sigma ** 2))
        return (g / g.max()).astype(np.float32)

    def _random_warp(self, patch: NDArray[np.float32]) -> NDArray[np.float32]:
        h, w = patch.shape
        angle = self._rng.uniform(-180 / 16, 180 / 16)
        scale = self._rng.uniform(0.9, 1.1)
        M = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), angle, scale)
        return cv2.warpAffine(patch, M, (w, h), borderMode=cv2.BORDER_REFLECT)

    @staticmethod
    def _to_gray(image: NDArray[np.uint8]) -> NDArray[np.float32]:
        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        return image.astype(np.float32)
