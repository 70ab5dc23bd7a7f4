#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PyTorch model definitions for the flag displacement predictor: MLP blocks, a
wind encoder, and the per-vertex displacement network.
"""

import torch
import torch.nn as nn

# --- Basic MLP Block ---
class MLP(nn.Module):
    """Multi-Layer Perceptron with ReLU activations and optional dropout."""
    def __init__(self, in_dim, hidden_dim, out_dim, num_layers=4, dropout_rate=0.0):
        super(MLP, self).__init__()
        if num_layers < 1:
            raise ValueError("Number of layers must be at least 1.")

        layers = []
        dim = in_dim
        # Input layer (if num_layers == 1, this is also the output layer)
        if num_layers > 1:
            layers.append(nn.Linear(dim, hidden_dim))
            layers.append(nn.ReLU())
            if dropout_rate > 0:
                layers.append(nn.Dropout(dropout_rate))
            dim = hidden_dim

        # Hidden layers
        for _ in range(num_layers - 2):
            layers.append(nn.Linear(dim, hidden_dim))
            layers.append(nn.ReLU())
            if dropout_rate > 0:
                layers.append(nn.Dropout(dropout_rate))
            dim = hidden_dim

        # Output layer
        layers.append(nn.Linear(dim, out_dim))

        self.net = nn.Sequential(*layers)

    def forward(self, x):
        return self.net(x)

# --- Wind Encoder ---
class WindEncoder(nn.Module):
    """Flattens the wind samples of one tick and encodes them into a single vector."""
    def __init__(self, wind_samples=8, hidden_dim=128, mlp_layers=3, dropout_rate=0.0):
        super(WindEncoder, self).__init__()
        self.wind_samples = wind_samples
        self.mlp = MLP(wind_samples * 3, hidden_dim, hidden_dim, num_layers=mlp_layers, dropout_rate=dropout_rate)

    def forward(self, wind):
        # (B, wind_samples, 3) -> (B, hidden_dim)
        return self.mlp(wind.reshape(wind.size(0), -1))

# --- Main Displacement Model ---
class FlagDisplacementNet(nn.Module):
    """
    Predicts one (normalized) displacement per vertex from the (normalized)
    vertex positions and the wind samples of the tick.

    Inputs:
        flag_input (Tensor): shape [B, num_vertices, 3]
        wind_input (Tensor): shape [B, wind_samples, 3]

    Returns:
        Tensor: displacement_output, shape [B, num_vertices, 3]
    """
    def __init__(self, wind_samples=8, hidden_dim=128, mlp_layers=3, dropout_rate=0.0):
        super(FlagDisplacementNet, self).__init__()
        self.vertex_encoder = MLP(3, hidden_dim, hidden_dim, num_layers=mlp_layers, dropout_rate=dropout_rate)
        self.wind_encoder = WindEncoder(wind_samples, hidden_dim, mlp_layers, dropout_rate=dropout_rate)
        self.decoder = MLP(2 * hidden_dim, hidden_dim, 3, num_layers=mlp_layers, dropout_rate=dropout_rate)

    def forward(self, flag_input, wind_input):
        h_v = self.vertex_encoder(flag_input)
        h_w = self.wind_encoder(wind_input)
        # Broadcast the tick's wind embedding to every vertex
        h_w = h_w.unsqueeze(1).expand(-1, h_v.size(1), -1)
        return self.decoder(torch.cat([h_v, h_w], dim=-1))
