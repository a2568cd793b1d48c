# Raw CSV blocks describing the default run: station 7 of cruise NBP98-2
# (Sayles et al., DSR 2001), deep Southern Ocean.
# Bottom-water concentrations are given per kg of seawater and converted
# to mol/m3 with the seawater density when the configuration is loaded.
# An empty value means "not supplied" (phosphate) or "equal to the
# bottom-water value" (initial conditions of solutes).

DEFAULT_CSVS = {
    "Main": """Simulation Options,
StopTime(years):,200,a
TimeStep(years):,7.8125e-06,a
SaveEverySteps:,128000,steps""",

    "Grid": """Depth Grid,
DepthResolution:,0.01,m
DepthMax:,0.4,m
DiffusiveBoundaryLayer:,0.000715,m""",

    "Porosity": """Sediment Porosity,
PorositySurface:,0.91,-
PorosityInfinity:,0.74,-
PorosityBeta:,33.0,1/m""",

    "LengthScales": """Characteristic Depths,
Bioturbation:,0.08,m
FastPOC:,0.03,m
SlowPOC:,1.0,m
Irrigation:,0.05,m""",

    "BottomWater": """Overlying Water Column,
Temperature:,0.84,degC
Salinity:,34.696,-
Pressure:,3932.8,dbar
DissolvedOxygen:,215.7,umol/kg
DissolvedInorganicCarbon:,2260,umol/kg
Phosphate:,2.2428,umol/kg""",

    "Flux": """Organic Matter Flux,
POMFlux:,3.557128618867924,g/m2/a
FastFraction:,0.65,-
SlowFraction:,0.25,-
RefractoryFraction:,0.1,-
SolidDensity:,2650000,g/m3""",

    "Initial": """Initial Conditions,
DissolvedOxygen:,,mol/m3
DissolvedInorganicCarbon:,,mol/m3
FastPOC:,0,mol/m3
SlowPOC:,300,mol/m3
RefractoryPOC:,600,mol/m3""",
}
