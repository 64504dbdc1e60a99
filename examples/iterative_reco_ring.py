import math
import torch
import numpy as np
import matplotlib.pyplot as plt
import torch.nn as nn
import torch.optim as optim
from lortrace import (
    RayTraceProjectorFunction,
    compute_system_matrix,
    physical_to_grid,
)


def ellipsoid_phantom(Nz, Ny, Nx):
    phantom = np.zeros((Nz, Ny, Nx), dtype=np.float32)
    ellipsoids = [
        # (x0, y0, z0, a, b, c, value)
        (0.0, 0.0, 0.0, 0.75, 0.6, 0.8, 1.0),
        (0.3, 0.2, 0.0, 0.15, 0.15, 0.3, 2.0),
        (-0.3, -0.1, 0.1, 0.2, 0.1, 0.25, 0.5),
    ]
    z, y, x = np.meshgrid(
        np.linspace(-1, 1, Nz), np.linspace(-1, 1, Ny), np.linspace(-1, 1, Nx), indexing="ij"
    )
    for (x0, y0, z0, a, b, c, value) in ellipsoids:
        inside = ((x - x0) / a) ** 2 + ((y - y0) / b) ** 2 + ((z - z0) / c) ** 2 <= 1.0
        phantom[inside] = value
    return phantom


def ring_lors(n_detectors, n_rings, radius, ring_spacing):
    """All detector pairs of a cylindrical scanner, in physical coordinates."""
    phi = 2 * math.pi * np.arange(n_detectors) / n_detectors
    z = (np.arange(n_rings) - (n_rings - 1) * 0.5) * ring_spacing
    det = np.array([(radius * math.cos(p), radius * math.sin(p), zr) for zr in z for p in phi])

    starts, stops = [], []
    for i in range(len(det)):
        for j in range(i + 1, len(det)):
            # skip pairs on neighbouring detectors, they barely see the volume
            dphi = abs((i % n_detectors) - (j % n_detectors))
            if min(dphi, n_detectors - dphi) < n_detectors // 4:
                continue
            starts.append(det[i])
            stops.append(det[j])
    return np.array(starts), np.array(stops)


class IterativeRecoModel(nn.Module):
    def __init__(self, volume_shape, system_matrix):
        super().__init__()
        self.reco = nn.Parameter(torch.zeros(volume_shape))
        self.system_matrix = system_matrix

    def forward(self, x):
        updated_reco = x + self.reco
        current_proj = RayTraceProjectorFunction.apply(updated_reco, self.system_matrix)
        return current_proj, updated_reco


class Pipeline:
    def __init__(self, lr, volume_shape, system_matrix, device, epoches=300):

        self.epoches = epoches
        self.model = IterativeRecoModel(volume_shape, system_matrix).to(device)

        self.optimizer = optim.AdamW(list(self.model.parameters()), lr=lr)
        self.loss = nn.MSELoss()

    def train(self, input, label):
        loss_values = []
        for epoch in range(self.epoches):
            self.optimizer.zero_grad()
            predictions, current_reco = self.model(input)
            loss_value = self.loss(predictions, label)
            loss_value.backward()
            self.optimizer.step()
            loss_values.append(loss_value.item())

            if epoch % 10 == 0:
                print(f"Epoch {epoch}, Loss: {loss_value.item()}")

        return loss_values, self.model


def main():
    Nx, Ny, Nz = 32, 32, 8
    voxel_size = np.array([2.0, 2.0, 4.0])
    phantom_cpu = ellipsoid_phantom(Nz, Ny, Nx)

    # physical centre of voxel (0, 0, 0), so that the volume is centred on the scanner axis
    origin = -(np.array([Nx, Ny, Nz]) - 1) * 0.5 * voxel_size
    starts_mm, stops_mm = ring_lors(n_detectors=64, n_rings=4, radius=45.0, ring_spacing=8.0)
    starts = physical_to_grid(starts_mm, voxel_size, origin)
    stops = physical_to_grid(stops_mm, voxel_size, origin)

    device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')
    system_matrix = compute_system_matrix(
        starts, stops, (Nz, Ny, Nx), voxel_size, device=device
    )
    print(f"{system_matrix.shape[0]} LORs, {system_matrix._nnz()} non-zeros")

    phantom_torch = torch.tensor(phantom_cpu, device=device)
    real_proj = RayTraceProjectorFunction.apply(phantom_torch, system_matrix)

    pipeline_instance = Pipeline(lr=1e-1,
                                 volume_shape=(Nz, Ny, Nx),
                                 system_matrix=system_matrix,
                                 device=device, epoches=300)

    ini_guess = torch.zeros_like(phantom_torch)

    loss_values, trained_model = pipeline_instance.train(ini_guess, real_proj)

    reco = trained_model(ini_guess)[1].squeeze().cpu().detach().numpy()

    plt.figure()
    plt.plot(loss_values)
    plt.title("Loss Curve")
    plt.xlabel("Epoch")
    plt.ylabel("Loss")
    plt.show()

    mid_slice = Nz // 2
    plt.figure(figsize=(12, 6))
    plt.subplot(1, 2, 1)
    plt.imshow(phantom_cpu[mid_slice, :, :], cmap="gray")
    plt.title("Original Phantom Mid-Slice")
    plt.axis("off")

    plt.subplot(1, 2, 2)
    plt.imshow(reco[mid_slice, :, :], cmap="gray")
    plt.title("Reconstructed Mid-Slice")
    plt.axis("off")
    plt.show()

if __name__ == "__main__":
    main()
